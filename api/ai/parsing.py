"""
Parsers for free-form LLM output plus local readability statistics.

Models do not always follow the requested format, so every parser degrades to
a usable default instead of raising (subject lines excepted: the caller has
its own fallback there).
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

OPTIMIZED_RE = re.compile(r"OPTIMIZED CONTENT:[\s\n]+([\s\S]+?)(?:\n\n|$)", re.IGNORECASE)
SCORE_RE = re.compile(r"SCORE:\s*(\d+(?:\.\d+)?)/10", re.IGNORECASE)
SUGGESTIONS_RE = re.compile(r"SUGGESTIONS:[\s\n]+([\s\S]+)", re.IGNORECASE)
BULLET_RE = re.compile(r"^\s*[-*]\s*")
NUMBERED_ITEM_RE = re.compile(r"^\s*(\d+)[.)]\s+", re.MULTILINE)
VARIATION_LABEL_RE = re.compile(r"^\s*(?:\*\*)?variation\s*\d*\s*(?:\*\*)?\s*[:.-]\s*", re.IGNORECASE)

OVERVIEW_RE = re.compile(r"SCRIPT OVERVIEW:[\s\n]+([\s\S]+?)(?:\n\s*\nSCENES:|\nSCENES:|$)", re.IGNORECASE)
SCENE_RE = re.compile(
    r"(\d+)\.\s*([^\n]+)\s*\n\s*-?\s*Visual:\s*([^\n]+)\s*\n\s*-?\s*Duration:\s*(\d+)s\s*\n"
    r"\s*-?\s*Narration:\s*([\s\S]+?)(?=\n\s*\d+\.|\n\s*Total duration|$)",
    re.IGNORECASE,
)

READABILITY_RE = re.compile(r"readability.*?(\d{1,3})", re.IGNORECASE | re.DOTALL)
SENTIMENT_RE = re.compile(r"sentiment.*?(positive|neutral|negative)", re.IGNORECASE | re.DOTALL)
KEYWORDS_RE = re.compile(r"keywords?[^:\n]*:[ \t]*([^\n]*)(?:\n[ \t]*([^\n]+))?", re.IGNORECASE)
SUGGESTION_SECTION_RE = re.compile(r"suggestions?[^\n]*\n([\s\S]+)", re.IGNORECASE)

WORD_RE = re.compile(r"\S+")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
SYLLABLE_RE = re.compile(r"[aeiouy]{1,2}")

WORDS_PER_MINUTE = 200
DEFAULT_READABILITY = 50
DEFAULT_SUBJECT_SCORE = 5
MAX_KEYWORDS = 5
MAX_SUGGESTIONS = 5


def _strip_bullet(line: str) -> str:
    return BULLET_RE.sub("", line).strip()


def _numbered_items(text: str) -> list[str]:
    """
    Split `1. foo\n2. bar` style text into its items (multi-line items kept whole).
    """
    matches = list(NUMBERED_ITEM_RE.finditer(text))
    items: list[str] = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        item = text[match.end():end].strip()
        if item:
            items.append(item)
    return items


def parse_optimization(text: str) -> dict[str, Any]:
    content_match = OPTIMIZED_RE.search(text)
    score_match = SCORE_RE.search(text)
    suggestions_match = SUGGESTIONS_RE.search(text)

    suggestions: list[str] = []
    if suggestions_match:
        suggestions = [
            line for line in (_strip_bullet(raw) for raw in suggestions_match.group(1).splitlines()) if line
        ]
    return {
        "optimized_content": content_match.group(1).strip() if content_match else text.strip(),
        "score": float(score_match.group(1)) if score_match else 0.0,
        "suggestions": suggestions,
    }


def parse_variations(text: str, *, count: int) -> list[str]:
    items = [VARIATION_LABEL_RE.sub("", item).strip() for item in _numbered_items(text)]
    items = [item for item in items if item]
    if not items:
        stripped = text.strip()
        return [stripped] if stripped else []
    return items[:count]


def parse_hashtags(text: str, *, count: int) -> list[str]:
    tags: list[str] = []
    for raw in re.split(r"[,\n]+", text):
        tag = _strip_bullet(raw).strip()
        if tag.startswith("#") and len(tag) > 1 and tag not in tags:
            tags.append(tag)
    return tags[:count]


def parse_video_script(text: str) -> dict[str, Any]:
    overview = OVERVIEW_RE.search(text)
    scenes = [
        {
            "scene_number": int(match.group(1)),
            "description": match.group(2).strip(),
            "visual_description": match.group(3).strip(),
            "duration": int(match.group(4)),
            "narration": match.group(5).strip(),
        }
        for match in SCENE_RE.finditer(text)
    ]
    return {
        "script": overview.group(1).strip() if overview else "",
        "scenes": scenes,
        "total_duration": sum(scene["duration"] for scene in scenes),
    }


def _parse_keywords(text: str) -> list[str]:
    match = KEYWORDS_RE.search(text)
    if match is None:
        return []
    line = match.group(1).strip() or (match.group(2) or "").strip()
    keywords: list[str] = []
    for raw in line.split(","):
        keyword = _strip_bullet(raw).strip(" .*")
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:MAX_KEYWORDS]


def _parse_suggestions(text: str) -> list[str]:
    section = SUGGESTION_SECTION_RE.search(text)
    if section:
        block = section.group(1)
        items = _numbered_items(block) or [
            _strip_bullet(line) for line in block.splitlines() if BULLET_RE.match(line) and _strip_bullet(line)
        ]
        if items:
            return items
    items = _numbered_items(text)
    if items:
        return items
    return [line.strip() for line in text.splitlines() if line.strip()][:MAX_SUGGESTIONS]


def parse_analysis(text: str) -> dict[str, Any]:
    readability = READABILITY_RE.search(text)
    sentiment = SENTIMENT_RE.search(text)
    score = int(readability.group(1)) if readability else DEFAULT_READABILITY
    return {
        "readability_score": max(0, min(100, score)),
        "sentiment": sentiment.group(1).lower() if sentiment else "neutral",
        "keywords": _parse_keywords(text),
        "suggestions": _parse_suggestions(text),
    }


def reading_stats(content: str) -> dict[str, Any]:
    """
    Word count, reading time in minutes and Flesch reading ease (0..100).
    """
    word_count = len(WORD_RE.findall(content))
    sentence_count = len([s for s in SENTENCE_SPLIT_RE.split(content) if s.strip()])
    syllable_count = max(1, len(SYLLABLE_RE.findall(content.lower())))
    words = max(1, word_count)

    flesch = 206.835 - 1.015 * (words / max(1, sentence_count)) - 84.6 * (syllable_count / words)
    return {
        "word_count": word_count,
        "reading_time": math.ceil(word_count / WORDS_PER_MINUTE),
        "flesch_reading_ease": round(min(100.0, max(0.0, flesch)), 2),
    }


def parse_subject_lines(text: str, *, max_length: int, count: int) -> list[dict[str, Any]]:
    """
    Accepts a JSON array or an object carrying `variations` / `subjects`.

    Raises ValueError when nothing usable comes back.
    """
    parsed = json.loads(text)
    if isinstance(parsed, dict):
        parsed = parsed.get("variations") or parsed.get("subjects") or []
    if not isinstance(parsed, list):
        raise ValueError("Subject line response is not a list.")

    lines: list[dict[str, Any]] = []
    for item in parsed:
        if isinstance(item, str):
            subject, score = item, DEFAULT_SUBJECT_SCORE
        elif isinstance(item, dict):
            subject = str(item.get("subject") or item.get("text") or "")
            raw_score = item.get("score")
            is_number = isinstance(raw_score, (int, float)) and not isinstance(raw_score, bool)
            score = raw_score if is_number else DEFAULT_SUBJECT_SCORE
        else:
            continue
        subject = subject.strip()
        if subject and len(subject) <= max_length:
            lines.append({"subject": subject, "score": score})

    if not lines:
        raise ValueError("No usable subject lines in response.")
    lines.sort(key=lambda line: line["score"], reverse=True)
    return lines[:count]


def fallback_subject_lines(content: str, *, count: int) -> list[dict[str, Any]]:
    text = " ".join(content.split())
    return [
        {"subject": text[:60], "score": DEFAULT_SUBJECT_SCORE},
        {"subject": f"Quick update: {text[:45]}...", "score": DEFAULT_SUBJECT_SCORE},
        {"subject": f"Important: {text[:50]}", "score": DEFAULT_SUBJECT_SCORE},
    ][:count]


def parse_personalization(text: str, *, original: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"content": original, "personalizations": []}
    if not isinstance(parsed, dict):
        return {"content": original, "personalizations": []}

    changes = parsed.get("personalizations")
    if isinstance(changes, list):
        personalizations = [str(change) for change in changes]
    elif changes:
        personalizations = [str(changes)]
    else:
        personalizations = []
    return {"content": str(parsed.get("content") or original), "personalizations": personalizations}


def substitute_merge_tags(content: str, user_data: dict[str, Any]) -> dict[str, Any]:
    result = content
    personalizations: list[str] = []
    for key, value in user_data.items():
        pattern = re.compile(r"\{\{\s*" + re.escape(str(key)) + r"\s*\}\}")
        if pattern.search(result):
            result = pattern.sub(lambda _: str(value), result)
            personalizations.append(f"Replaced {{{{{key}}}}} with user data")
    return {"content": result, "personalizations": personalizations}
