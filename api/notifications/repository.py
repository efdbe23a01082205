"""
Notification persistence helpers.
"""

from __future__ import annotations

from typing import Any

from core import db

NOTIFICATION_COLUMNS = """
    n.id, n.user_id, n.type, n.title, n.message, n.data,
    n.related_entity_type, n.related_entity_id, n.read_at, n.created_at
"""

CHANNELS_SUBQUERY = """
    COALESCE(
        (
            SELECT json_agg(
                json_build_object(
                    'channel', c.channel,
                    'status', c.status,
                    'delivered_at', c.delivered_at,
                    'error', c.error
                )
                ORDER BY c.channel
            )
            FROM notification_channels c
            WHERE c.notification_id = n.id
        ),
        '[]'::json
    ) AS channels
"""


async def insert_notification(
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any],
    related_entity_type: str | None,
    related_entity_id: str | None,
    channels: list[str],
) -> dict:
    async with db.transaction() as conn:
        row = await conn.fetchrow(
            f"""
            INSERT INTO notifications AS n
                (user_id, type, title, message, data, related_entity_type, related_entity_id)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {NOTIFICATION_COLUMNS}
            """,
            user_id,
            type,
            title,
            message,
            data,
            related_entity_type,
            related_entity_id,
        )
        if row is None:
            raise RuntimeError("Failed to create notification.")
        if channels:
            await conn.executemany(
                "INSERT INTO notification_channels (notification_id, channel) VALUES ($1, $2)",
                [(row["id"], channel) for channel in channels],
            )
    notification = dict(row)
    notification["channels"] = [
        {"channel": channel, "status": "PENDING", "delivered_at": None, "error": None} for channel in channels
    ]
    return notification


async def mark_channel(notification_id: int, channel: str, *, status: str, error: str | None = None) -> dict | None:
    return await db.fetch_one(
        """
        UPDATE notification_channels
        SET status = $3,
            error = $4,
            delivered_at = CASE WHEN $3 = 'DELIVERED' THEN now() ELSE delivered_at END
        WHERE notification_id = $1 AND channel = $2
        RETURNING channel, status, delivered_at, error
        """,
        notification_id,
        channel,
        status,
        error,
    )


async def list_notifications(
    *,
    user_id: int,
    read: bool | None,
    type: str | None,
    channel: str | None,
    limit: int,
    offset: int,
) -> tuple[list[dict], int]:
    where = """
        WHERE n.user_id = $1
          AND ($2::boolean IS NULL OR (n.read_at IS NOT NULL) = $2)
          AND ($3::text IS NULL OR n.type = $3)
          AND (
              $4::text IS NULL
              OR EXISTS (
                  SELECT 1 FROM notification_channels c
                  WHERE c.notification_id = n.id AND c.channel = $4
              )
          )
    """
    rows = await db.fetch_all(
        f"""
        SELECT {NOTIFICATION_COLUMNS}, {CHANNELS_SUBQUERY}
        FROM notifications n
        {where}
        ORDER BY n.created_at DESC, n.id DESC
        LIMIT $5 OFFSET $6
        """,
        user_id,
        read,
        type,
        channel,
        limit,
        offset,
    )
    total = await db.fetch_val(f"SELECT count(*) FROM notifications n {where}", user_id, read, type, channel)
    return rows, int(total or 0)


async def unread_count(user_id: int) -> int:
    value = await db.fetch_val(
        "SELECT count(*) FROM notifications WHERE user_id = $1 AND read_at IS NULL",
        user_id,
    )
    return int(value or 0)


async def mark_read(user_id: int, notification_ids: list[int]) -> list[int]:
    """
    Set read_at on the caller's unread notifications; returns the ids that changed.
    """
    rows = await db.fetch_all(
        """
        UPDATE notifications
        SET read_at = now()
        WHERE user_id = $1 AND id = ANY($2::bigint[]) AND read_at IS NULL
        RETURNING id
        """,
        user_id,
        notification_ids,
    )
    return [int(r["id"]) for r in rows]


async def list_preferences(user_id: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT type, channel, enabled
        FROM notification_preferences
        WHERE user_id = $1
        ORDER BY type, channel
        """,
        user_id,
    )


async def upsert_preferences(user_id: int, preferences: list[tuple[str, str, bool]]) -> None:
    async with db.transaction() as conn:
        await conn.executemany(
            """
            INSERT INTO notification_preferences (user_id, type, channel, enabled)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, type, channel) DO UPDATE SET enabled = EXCLUDED.enabled
            """,
            [(user_id, type_, channel, enabled) for type_, channel, enabled in preferences],
        )


async def insert_missing_preferences(user_id: int, preferences: list[tuple[str, str, bool]]) -> None:
    async with db.transaction() as conn:
        await conn.executemany(
            """
            INSERT INTO notification_preferences (user_id, type, channel, enabled)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, type, channel) DO NOTHING
            """,
            [(user_id, type_, channel, enabled) for type_, channel, enabled in preferences],
        )


async def disabled_channels(user_id: int, type: str) -> set[str]:
    rows = await db.fetch_all(
        """
        SELECT channel
        FROM notification_preferences
        WHERE user_id = $1 AND type = $2 AND NOT enabled
        """,
        user_id,
        type,
    )
    return {str(r["channel"]) for r in rows}
