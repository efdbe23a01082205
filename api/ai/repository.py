"""
AI generation log persistence.
"""

from __future__ import annotations

from typing import Any

from core import db


async def insert_generation_log(
    *,
    user_id: int | None,
    kind: str,
    prompt: str,
    response: str,
    model: str,
    tokens_used: int,
    metadata: dict[str, Any] | None = None,
) -> None:
    await db.execute(
        """
        INSERT INTO ai_generation_logs (user_id, kind, prompt, response, model, tokens_used, metadata)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        """,
        user_id,
        kind,
        prompt,
        response,
        model,
        tokens_used,
        metadata or {},
    )
