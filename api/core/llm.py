"""
LLM HTTP client helpers (Ollama chat API).

Used endpoint:
- POST /api/chat -> {"message": {"role": "assistant", "content": "..."},
                     "prompt_eval_count": n, "eval_count": m}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .config import env_float, env_str

DEFAULT_BASE_URL = "http://ollama:11434"
DEFAULT_MODEL = "qwen2.5:3b-instruct"


# LLM failures are explicit and separable from other runtime errors.
class LLMError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChatResult:
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def llm_base_url() -> str:
    return env_str("LLM_BASE_URL", DEFAULT_BASE_URL)


def llm_model() -> str:
    return env_str("LLM_MODEL", DEFAULT_MODEL)


def llm_timeout_s() -> float:
    return env_float("LLM_TIMEOUT_S", 120.0)


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise LLMError("LLM_BASE_URL is empty.")
    return base_url.rstrip("/")


def _int_or_zero(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


async def chat_text(
    *,
    system_prompt: str,
    user_prompt: str,
    temperature: float | None = None,
    max_output_tokens: int | None = None,
    json_output: bool = False,
    model: str | None = None,
) -> ChatResult:
    """
    Generate one assistant message from a system + user prompt pair.
    """
    return await chat_messages(
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        json_output=json_output,
        model=model,
    )


async def chat_messages(
    *,
    messages: list[dict[str, str]],
    temperature: float | None = None,
    max_output_tokens: int | None = None,
    json_output: bool = False,
    model: str | None = None,
    base_url: str | None = None,
    timeout_s: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatResult:
    """
    Generate one assistant message from the chat API using a message list.

    `json_output=True` asks the server to constrain output to valid JSON.
    """
    base_url = _normalize_base_url(base_url or llm_base_url())
    model = (model or llm_model()).strip()
    if not model:
        raise LLMError("LLM model name is empty.")
    if not messages:
        raise LLMError("Messages list is empty.")

    payload: dict[str, Any] = {"model": model, "messages": messages, "stream": False}
    if json_output:
        payload["format"] = "json"
    options: dict[str, Any] = {}
    if temperature is not None:
        options["temperature"] = float(temperature)
    if max_output_tokens is not None:
        options["num_predict"] = int(max_output_tokens)
    if options:
        payload["options"] = options

    try:
        async with httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s or llm_timeout_s(),
            transport=transport,
        ) as client:
            resp = await client.post("/api/chat", json=payload)
    except httpx.HTTPError as exc:
        raise LLMError(f"LLM request failed: {exc}") from exc

    if resp.status_code != 200:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:500]
        raise LLMError(f"LLM chat request failed: {resp.status_code} {body}")

    data: dict[str, Any] = resp.json()
    content = ""
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        content = message["content"].strip()
    if not content and isinstance(data.get("response"), str):
        content = data["response"].strip()
    if not content:
        raise LLMError("LLM returned an empty chat response.")

    return ChatResult(
        content=content,
        model=str(data.get("model") or model),
        prompt_tokens=_int_or_zero(data.get("prompt_eval_count")),
        completion_tokens=_int_or_zero(data.get("eval_count")),
    )
