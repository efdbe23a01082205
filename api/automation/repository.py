"""
Automation persistence helpers.
"""

from __future__ import annotations

from typing import Any

from core import db

RULE_COLUMNS = """
    id, user_id, name, description, trigger_type, trigger_config, actions,
    is_active, created_at, updated_at
"""

WRITABLE_COLUMNS: tuple[str, ...] = ("name", "description", "trigger_type", "trigger_config", "actions", "is_active")


async def insert_rule(*, user_id: int, values: dict[str, Any]) -> dict:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    placeholders = ", ".join(f"${i}" for i in range(2, len(columns) + 2))
    row = await db.fetch_one(
        f"""
        INSERT INTO automation_rules (user_id, {", ".join(columns)})
        VALUES ($1, {placeholders})
        RETURNING {RULE_COLUMNS}
        """,
        user_id,
        *[values[c] for c in columns],
    )
    if row is None:
        raise RuntimeError("Failed to create automation rule.")
    return row


async def get_rule(rule_id: int, *, user_id: int | None = None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {RULE_COLUMNS}
        FROM automation_rules
        WHERE id = $1 AND ($2::bigint IS NULL OR user_id = $2)
        """,
        rule_id,
        user_id,
    )


async def list_rules(*, user_id: int, trigger_type: str | None, is_active: bool | None) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {RULE_COLUMNS}
        FROM automation_rules
        WHERE user_id = $1
          AND ($2::text IS NULL OR trigger_type = $2)
          AND ($3::boolean IS NULL OR is_active = $3)
        ORDER BY created_at DESC, id DESC
        """,
        user_id,
        trigger_type,
        is_active,
    )


async def update_rule(rule_id: int, *, user_id: int, values: dict[str, Any]) -> dict | None:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    if not columns:
        return await get_rule(rule_id, user_id=user_id)
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
    return await db.fetch_one(
        f"""
        UPDATE automation_rules
        SET {assignments}, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {RULE_COLUMNS}
        """,
        rule_id,
        user_id,
        *[values[c] for c in columns],
    )


async def delete_rule(rule_id: int, *, user_id: int) -> bool:
    status = await db.execute("DELETE FROM automation_rules WHERE id = $1 AND user_id = $2", rule_id, user_id)
    return db.affected_rows(status) > 0


async def insert_event(rule_id: int, event_type: str, metadata: dict[str, Any]) -> None:
    await db.execute(
        "INSERT INTO automation_events (rule_id, event_type, metadata) VALUES ($1, $2, $3)",
        rule_id,
        event_type,
        metadata,
    )


async def list_events(rule_id: int, *, limit: int, offset: int) -> tuple[list[dict], int]:
    rows = await db.fetch_all(
        """
        SELECT id, rule_id, event_type, metadata, created_at
        FROM automation_events
        WHERE rule_id = $1
        ORDER BY created_at DESC, id DESC
        LIMIT $2 OFFSET $3
        """,
        rule_id,
        limit,
        offset,
    )
    total = await db.fetch_val("SELECT count(*) FROM automation_events WHERE rule_id = $1", rule_id)
    return rows, int(total or 0)
