"""
Integration persistence helpers.
"""

from __future__ import annotations

from typing import Any

from core import db

INTEGRATION_COLUMNS = "id, user_id, name, type, config, is_active, created_at, updated_at"

WRITABLE_COLUMNS: tuple[str, ...] = ("name", "config", "is_active")


async def insert_integration(*, user_id: int, name: str, type: str, config: dict[str, Any]) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO integrations (user_id, name, type, config)
        VALUES ($1, $2, $3, $4)
        RETURNING {INTEGRATION_COLUMNS}
        """,
        user_id,
        name,
        type,
        config,
    )
    if row is None:
        raise RuntimeError("Failed to create integration.")
    return row


async def get_integration(integration_id: int, *, user_id: int | None = None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {INTEGRATION_COLUMNS}
        FROM integrations
        WHERE id = $1 AND ($2::bigint IS NULL OR user_id = $2)
        """,
        integration_id,
        user_id,
    )


async def list_integrations(*, user_id: int, type: str | None, is_active: bool | None) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {INTEGRATION_COLUMNS}
        FROM integrations
        WHERE user_id = $1
          AND ($2::text IS NULL OR type = $2)
          AND ($3::boolean IS NULL OR is_active = $3)
        ORDER BY created_at DESC, id DESC
        """,
        user_id,
        type,
        is_active,
    )


async def update_integration(integration_id: int, *, user_id: int, values: dict[str, Any]) -> dict | None:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    if not columns:
        return await get_integration(integration_id, user_id=user_id)
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
    return await db.fetch_one(
        f"""
        UPDATE integrations
        SET {assignments}, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {INTEGRATION_COLUMNS}
        """,
        integration_id,
        user_id,
        *[values[c] for c in columns],
    )


async def delete_integration(integration_id: int, *, user_id: int) -> bool:
    status = await db.execute("DELETE FROM integrations WHERE id = $1 AND user_id = $2", integration_id, user_id)
    return db.affected_rows(status) > 0


async def insert_event(integration_id: int, event_type: str, metadata: dict[str, Any]) -> dict | None:
    return await db.fetch_one(
        """
        INSERT INTO integration_events (integration_id, event_type, metadata)
        VALUES ($1, $2, $3)
        RETURNING id, integration_id, event_type, metadata, created_at
        """,
        integration_id,
        event_type,
        metadata,
    )


async def list_events(integration_id: int, *, limit: int, offset: int) -> tuple[list[dict], int]:
    rows = await db.fetch_all(
        """
        SELECT id, integration_id, event_type, metadata, created_at
        FROM integration_events
        WHERE integration_id = $1
        ORDER BY created_at DESC, id DESC
        LIMIT $2 OFFSET $3
        """,
        integration_id,
        limit,
        offset,
    )
    total = await db.fetch_val("SELECT count(*) FROM integration_events WHERE integration_id = $1", integration_id)
    return rows, int(total or 0)
