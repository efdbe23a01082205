"""
Security persistence helpers (audit log, login attempts, security events).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from core import db


async def insert_audit_log(
    *,
    user_id: int | None,
    action: str,
    entity_type: str | None,
    entity_id: str | None,
    metadata: dict[str, Any],
    ip_address: str | None,
    user_agent: str | None,
) -> None:
    await db.execute(
        """
        INSERT INTO audit_logs (user_id, action, entity_type, entity_id, metadata, ip_address, user_agent)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        """,
        user_id,
        action,
        entity_type,
        entity_id,
        metadata,
        ip_address,
        user_agent,
    )


async def insert_login_attempt(
    *,
    email: str,
    success: bool,
    ip_address: str,
    user_agent: str | None,
) -> None:
    await db.execute(
        """
        INSERT INTO login_attempts (email, ip_address, user_agent, success)
        VALUES ($1, $2, $3, $4)
        """,
        email,
        ip_address,
        user_agent,
        success,
    )


async def insert_security_event(
    *,
    event_type: str,
    user_id: int | None,
    ip_address: str | None,
    user_agent: str | None,
    metadata: dict[str, Any],
) -> None:
    await db.execute(
        """
        INSERT INTO security_events (type, user_id, ip_address, user_agent, metadata)
        VALUES ($1, $2, $3, $4, $5)
        """,
        event_type,
        user_id,
        ip_address,
        user_agent,
        metadata,
    )


async def count_failed_logins_for_ip(ip_address: str, *, minutes: int) -> int:
    value = await db.fetch_val(
        """
        SELECT count(*)
        FROM login_attempts
        WHERE ip_address = $1
          AND success = false
          AND created_at >= now() - make_interval(mins => $2)
        """,
        ip_address,
        minutes,
    )
    return int(value or 0)


async def count_security_events(user_id: int, *, event_type: str, minutes: int) -> int:
    value = await db.fetch_val(
        """
        SELECT count(*)
        FROM security_events
        WHERE user_id = $1
          AND type = $2
          AND created_at >= now() - make_interval(mins => $3)
        """,
        user_id,
        event_type,
        minutes,
    )
    return int(value or 0)


async def list_audit_logs(
    *,
    user_id: int | None,
    action: str | None,
    entity_type: str | None,
    entity_id: str | None,
    start_date: datetime | None,
    end_date: datetime | None,
    limit: int,
    offset: int,
) -> tuple[list[dict], int]:
    # NULL parameters disable their filter.
    where = """
        WHERE ($1::bigint IS NULL OR a.user_id = $1)
          AND ($2::text IS NULL OR a.action = $2)
          AND ($3::text IS NULL OR a.entity_type = $3)
          AND ($4::text IS NULL OR a.entity_id = $4)
          AND ($5::timestamptz IS NULL OR a.created_at >= $5)
          AND ($6::timestamptz IS NULL OR a.created_at <= $6)
    """
    params = (user_id, action, entity_type, entity_id, start_date, end_date)
    rows = await db.fetch_all(
        f"""
        SELECT a.id, a.user_id, u.name AS user_name, u.email AS user_email,
               a.action, a.entity_type, a.entity_id, a.metadata,
               a.ip_address, a.user_agent, a.created_at
        FROM audit_logs a
        LEFT JOIN users u ON u.id = a.user_id
        {where}
        ORDER BY a.created_at DESC, a.id DESC
        LIMIT $7 OFFSET $8
        """,
        *params,
        limit,
        offset,
    )
    total = await db.fetch_val(f"SELECT count(*) FROM audit_logs a {where}", *params)
    return rows, int(total or 0)


async def list_login_attempts(email: str, *, limit: int, offset: int) -> tuple[list[dict], int]:
    rows = await db.fetch_all(
        """
        SELECT id, email, ip_address, user_agent, success, created_at
        FROM login_attempts
        WHERE lower(email) = lower($1)
        ORDER BY created_at DESC, id DESC
        LIMIT $2 OFFSET $3
        """,
        email,
        limit,
        offset,
    )
    total = await db.fetch_val(
        "SELECT count(*) FROM login_attempts WHERE lower(email) = lower($1)",
        email,
    )
    return rows, int(total or 0)


async def set_user_active(user_id: int, *, is_active: bool) -> dict | None:
    return await db.fetch_one(
        """
        UPDATE users
        SET is_active = $2, updated_at = now()
        WHERE id = $1
        RETURNING id, email, is_active
        """,
        user_id,
        is_active,
    )


async def get_user_summary(user_id: int) -> dict | None:
    return await db.fetch_one(
        "SELECT id, name, email, is_active FROM users WHERE id = $1",
        user_id,
    )
