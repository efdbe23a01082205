"""
AI content generation and optimization.

Generation endpoints surface LLM failures (mapped to 502 by the app); the
optimization helpers that have a sensible non-LLM answer fall back to it.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from analytics import repository as analytics_repository
from core import llm
from core.cache import TTLCache, cache_key

from . import parsing, prompts, repository, schemas, send_time

logger = logging.getLogger(__name__)

MAX_TOKENS_BY_LENGTH = {"short": 150, "medium": 300, "long": 600}

ANALYSIS_TTL_S = 3600.0
SUBJECT_LINES_TTL_S = 3600.0
PERSONALIZE_TTL_S = 3600.0
SEND_TIME_TTL_S = 86400.0

result_cache = TTLCache(default_ttl_s=3600.0)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _metadata(result: llm.ChatResult) -> dict[str, Any]:
    return {"model": result.model, "tokens": result.total_tokens, "generated_at": _now()}


async def _complete(
    current_user: dict | None,
    *,
    kind: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float,
    max_output_tokens: int,
    json_output: bool = False,
    log_metadata: dict[str, Any] | None = None,
) -> llm.ChatResult:
    result = await llm.chat_text(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        json_output=json_output,
    )
    logger.info(
        "ai_completion kind=%s model=%s prompt_tokens=%s completion_tokens=%s",
        kind,
        result.model,
        result.prompt_tokens,
        result.completion_tokens,
    )
    try:
        await repository.insert_generation_log(
            user_id=int(current_user["id"]) if current_user else None,
            kind=kind,
            prompt=user_prompt,
            response=result.content,
            model=result.model,
            tokens_used=result.total_tokens,
            metadata=log_metadata,
        )
    except Exception:
        logger.exception("ai_generation_log_failed kind=%s", kind)
    return result


async def generate_content(current_user: dict, payload: schemas.GenerateContentRequest) -> dict:
    result = await _complete(
        current_user,
        kind="generate",
        system_prompt=prompts.content_system_prompt(),
        user_prompt=prompts.content_user_prompt(
            content_type=payload.content_type,
            topic=payload.topic,
            tone=payload.tone,
            target_audience=payload.target_audience,
            keywords=payload.keywords,
            length=payload.length,
            language=payload.language,
            brand_voice=payload.brand_voice,
            call_to_action=payload.call_to_action,
        ),
        temperature=0.7,
        max_output_tokens=MAX_TOKENS_BY_LENGTH[payload.length],
        log_metadata={"content_type": payload.content_type, "length": payload.length},
    )
    return {"content": result.content, "metadata": _metadata(result)}


async def optimize_content(current_user: dict, payload: schemas.OptimizeContentRequest) -> dict:
    result = await _complete(
        current_user,
        kind="optimize",
        system_prompt=prompts.optimize_system_prompt(),
        user_prompt=prompts.optimize_user_prompt(
            payload.content,
            target_keywords=payload.target_keywords,
            seo_focus=payload.seo_focus,
            readability=payload.readability,
            engagement=payload.engagement,
            character_limit=payload.character_limit,
        ),
        temperature=0.5,
        max_output_tokens=1000,
    )
    return {**parsing.parse_optimization(result.content), "metadata": _metadata(result)}


async def generate_variations(current_user: dict, payload: schemas.VariationsRequest) -> dict:
    result = await _complete(
        current_user,
        kind="variations",
        system_prompt=prompts.variations_system_prompt(),
        user_prompt=prompts.variations_user_prompt(
            payload.content,
            count=payload.count,
            tone=payload.tone,
            style=payload.style,
            length=payload.length,
        ),
        temperature=0.8,
        max_output_tokens=2000,
        log_metadata={"count": payload.count},
    )
    items = parsing.parse_variations(result.content, count=payload.count)
    return {
        "variations": [{"variation": index, "content": text} for index, text in enumerate(items, start=1)],
        "metadata": _metadata(result),
    }


async def generate_hashtags(current_user: dict, payload: schemas.HashtagsRequest) -> dict:
    result = await _complete(
        current_user,
        kind="hashtags",
        system_prompt=prompts.hashtags_system_prompt(),
        user_prompt=prompts.hashtags_user_prompt(payload.content, platform=payload.platform, count=payload.count),
        temperature=0.7,
        max_output_tokens=200,
        log_metadata={"platform": payload.platform},
    )
    return {"hashtags": parsing.parse_hashtags(result.content, count=payload.count), "metadata": _metadata(result)}


async def generate_video_script(current_user: dict, payload: schemas.VideoScriptRequest) -> dict:
    result = await _complete(
        current_user,
        kind="video_script",
        system_prompt=prompts.video_script_system_prompt(),
        user_prompt=prompts.video_script_user_prompt(
            payload.content,
            duration=payload.duration,
            style=payload.style,
            include_visuals=payload.include_visuals,
        ),
        temperature=0.7,
        max_output_tokens=2000,
        log_metadata={"duration": payload.duration, "style": payload.style},
    )
    return {**parsing.parse_video_script(result.content), "metadata": _metadata(result)}


async def analyze_content(current_user: dict, payload: schemas.AnalyzeContentRequest) -> dict:
    content = payload.content
    key = f"content_analysis_{hashlib.md5(content.encode('utf-8')).hexdigest()}"

    async def _analyze() -> dict:
        result = await _complete(
            current_user,
            kind="analyze",
            system_prompt=prompts.analysis_system_prompt(),
            user_prompt=prompts.analysis_user_prompt(content),
            temperature=0.3,
            max_output_tokens=1000,
        )
        return {**parsing.parse_analysis(result.content), "metadata": _metadata(result)}

    analysis, from_cache = await result_cache.get_or_set(key, _analyze, ANALYSIS_TTL_S)
    stats = parsing.reading_stats(content)
    logger.info(
        "content_analyzed length=%s words=%s from_cache=%s",
        len(content),
        stats["word_count"],
        from_cache,
    )
    return {**analysis, **stats, "from_cache": from_cache}


async def optimal_send_time(current_user: dict) -> dict:
    user_id = int(current_user["id"])

    async def _compute() -> dict:
        since = _now() - timedelta(days=send_time.LOOKBACK_DAYS)
        buckets = await analytics_repository.send_history(user_id, since=since)
        if not buckets:
            return send_time.default_send_time()
        campaigns = await analytics_repository.sent_campaign_count(user_id, since=since)
        return send_time.best_send_time(buckets, campaigns_analyzed=campaigns)

    try:
        result, from_cache = await result_cache.get_or_set(f"optimal_send_time_{user_id}", _compute, SEND_TIME_TTL_S)
    except Exception:
        logger.exception("optimal_send_time_failed user_id=%s", user_id)
        return send_time.default_send_time()
    logger.info(
        "optimal_send_time user_id=%s best_day=%s best_time=%s confidence=%s from_cache=%s",
        user_id,
        result["best_day"],
        result["best_time"],
        result["confidence"],
        from_cache,
    )
    return result


async def subject_lines(current_user: dict, payload: schemas.SubjectLinesRequest) -> dict:
    key = cache_key(
        "subject_lines",
        payload.content,
        payload.count,
        payload.tone,
        payload.max_length,
        payload.include_emojis,
    )

    async def _generate() -> list[dict[str, Any]]:
        result = await _complete(
            current_user,
            kind="subject_lines",
            system_prompt=prompts.subject_lines_system_prompt(
                max_length=payload.max_length,
                include_emojis=payload.include_emojis,
            ),
            user_prompt=prompts.subject_lines_user_prompt(
                payload.content,
                count=payload.count,
                tone=payload.tone,
                max_length=payload.max_length,
                include_emojis=payload.include_emojis,
            ),
            temperature=0.7,
            max_output_tokens=500,
            json_output=True,
        )
        return parsing.parse_subject_lines(result.content, max_length=payload.max_length, count=payload.count)

    try:
        variations, _ = await result_cache.get_or_set(key, _generate, SUBJECT_LINES_TTL_S)
    except (llm.LLMError, ValueError) as exc:
        logger.warning("subject_lines_fallback length=%s error=%s", len(payload.content), exc)
        return {"subject_lines": parsing.fallback_subject_lines(payload.content, count=payload.count), "fallback": True}
    return {"subject_lines": variations, "fallback": False}


async def personalize_content(current_user: dict, payload: schemas.PersonalizeRequest) -> dict:
    if not payload.user_data:
        return {"content": payload.content, "personalizations": [], "fallback": False}

    key = cache_key("personalized", payload.content, payload.user_data, payload.merge_tags)

    async def _personalize() -> dict:
        result = await _complete(
            current_user,
            kind="personalize",
            system_prompt=prompts.personalize_system_prompt(merge_tags=payload.merge_tags),
            user_prompt=prompts.personalize_user_prompt(
                payload.content,
                payload.user_data,
                merge_tags=payload.merge_tags,
            ),
            temperature=0.5,
            max_output_tokens=2000,
            json_output=True,
        )
        return parsing.parse_personalization(result.content, original=payload.content)

    try:
        personalized, _ = await result_cache.get_or_set(key, _personalize, PERSONALIZE_TTL_S)
    except llm.LLMError as exc:
        logger.warning("personalize_fallback length=%s error=%s", len(payload.content), exc)
        if payload.merge_tags:
            return {**parsing.substitute_merge_tags(payload.content, payload.user_data), "fallback": True}
        return {"content": payload.content, "personalizations": [], "fallback": True}
    return {**personalized, "fallback": False}
