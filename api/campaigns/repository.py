"""
Campaign persistence helpers.
"""

from __future__ import annotations

from typing import Any

from core import db

CAMPAIGN_COLUMNS = """
    id, user_id, name, description, subject, from_email, from_name, reply_to,
    template, status, scheduled_at, sent_at, completed_at, recipient_filter,
    updated_by, created_at, updated_at
"""

WRITABLE_COLUMNS: tuple[str, ...] = (
    "name",
    "description",
    "subject",
    "from_email",
    "from_name",
    "reply_to",
    "template",
    "status",
    "scheduled_at",
    "recipient_filter",
)

SORTABLE_COLUMNS = frozenset({"created_at", "updated_at", "name", "status", "scheduled_at", "sent_at"})

RECIPIENT_COLUMNS = """
    r.campaign_id, r.contact_id, r.email, r.status, r.opens, r.clicks, r.sent_at,
    r.last_opened_at, r.last_clicked_at, r.error
"""


def order_by_clause(sort: str | None) -> str:
    raw = (sort or "-created_at").strip()
    column = raw.lstrip("-+")
    if column not in SORTABLE_COLUMNS:
        raw, column = "-created_at", "created_at"
    direction = "DESC" if raw.startswith("-") else "ASC"
    return f"{column} {direction} NULLS LAST, id {direction}"


async def insert_campaign(*, user_id: int, values: dict[str, Any]) -> dict:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    placeholders = ", ".join(f"${i}" for i in range(3, len(columns) + 3))
    row = await db.fetch_one(
        f"""
        INSERT INTO campaigns (user_id, updated_by, {", ".join(columns)})
        VALUES ($1, $2, {placeholders})
        RETURNING {CAMPAIGN_COLUMNS}
        """,
        user_id,
        user_id,
        *[values[c] for c in columns],
    )
    if row is None:
        raise RuntimeError("Failed to create campaign.")
    return row


async def get_campaign(campaign_id: int, *, user_id: int | None = None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {CAMPAIGN_COLUMNS}
        FROM campaigns
        WHERE id = $1 AND ($2::bigint IS NULL OR user_id = $2)
        """,
        campaign_id,
        user_id,
    )


async def list_campaigns(
    *,
    user_id: int,
    statuses: list[str] | None,
    sort: str | None,
    limit: int,
    offset: int,
) -> tuple[list[dict], int]:
    where = "WHERE user_id = $1 AND ($2::text[] IS NULL OR status = ANY($2))"
    rows = await db.fetch_all(
        f"""
        SELECT {CAMPAIGN_COLUMNS}
        FROM campaigns
        {where}
        ORDER BY {order_by_clause(sort)}
        LIMIT $3 OFFSET $4
        """,
        user_id,
        statuses or None,
        limit,
        offset,
    )
    total = await db.fetch_val(f"SELECT count(*) FROM campaigns {where}", user_id, statuses or None)
    return rows, int(total or 0)


async def update_campaign(campaign_id: int, *, user_id: int, values: dict[str, Any]) -> dict | None:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    if not columns:
        return await get_campaign(campaign_id, user_id=user_id)
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
    return await db.fetch_one(
        f"""
        UPDATE campaigns
        SET {assignments}, updated_by = $2, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {CAMPAIGN_COLUMNS}
        """,
        campaign_id,
        user_id,
        *[values[c] for c in columns],
    )


async def delete_campaign(campaign_id: int, *, user_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM campaigns WHERE id = $1 AND user_id = $2 AND status <> 'sending'",
        campaign_id,
        user_id,
    )
    return db.affected_rows(status) > 0


async def claim_for_sending(campaign_id: int, *, user_id: int, from_statuses: list[str]) -> dict | None:
    """
    Atomically move a campaign to `sending`; None when its status no longer allows it.
    """
    return await db.fetch_one(
        f"""
        UPDATE campaigns
        SET status = 'sending', sent_at = COALESCE(sent_at, now()), updated_at = now()
        WHERE id = $1 AND user_id = $2 AND status = ANY($3::text[])
        RETURNING {CAMPAIGN_COLUMNS}
        """,
        campaign_id,
        user_id,
        from_statuses,
    )


async def claim_due_scheduled() -> list[dict]:
    return await db.fetch_all(
        f"""
        UPDATE campaigns
        SET status = 'sending', sent_at = COALESCE(sent_at, now()), updated_at = now()
        WHERE status = 'scheduled'
          AND scheduled_at <= now()
          AND EXISTS (SELECT 1 FROM campaign_recipients r WHERE r.campaign_id = campaigns.id)
        RETURNING {CAMPAIGN_COLUMNS}
        """
    )


async def get_status(campaign_id: int) -> str | None:
    value = await db.fetch_val("SELECT status FROM campaigns WHERE id = $1", campaign_id)
    return str(value) if value is not None else None


async def complete_sending(campaign_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE campaigns
        SET status = 'sent', completed_at = now(), updated_at = now()
        WHERE id = $1 AND status = 'sending'
          AND NOT EXISTS (
              SELECT 1 FROM campaign_recipients WHERE campaign_id = $1 AND status = 'pending'
          )
        RETURNING {CAMPAIGN_COLUMNS}
        """,
        campaign_id,
    )


async def pause_if_sending(campaign_id: int) -> bool:
    status = await db.execute(
        "UPDATE campaigns SET status = 'paused', updated_at = now() WHERE id = $1 AND status = 'sending'",
        campaign_id,
    )
    return db.affected_rows(status) > 0


async def replace_recipients(
    campaign_id: int,
    *,
    user_id: int,
    tags: list[str],
    statuses: list[str],
    countries: list[str],
    recipient_filter: dict[str, Any],
) -> int:
    """
    Rebuild the recipient list from the owner's contacts matching the filter.

    Tags match when a contact has any of them; countries compare case-insensitively.
    """
    async with db.transaction() as conn:
        await conn.execute("DELETE FROM campaign_recipients WHERE campaign_id = $1", campaign_id)
        status = await conn.execute(
            """
            INSERT INTO campaign_recipients (campaign_id, contact_id, email)
            SELECT $1, c.id, c.email
            FROM contacts c
            WHERE c.user_id = $2
              AND c.status = ANY($3::text[])
              AND (cardinality($4::text[]) = 0 OR c.tags && $4::text[])
              AND (cardinality($5::text[]) = 0 OR lower(c.country) = ANY($5::text[]))
            """,
            campaign_id,
            user_id,
            statuses,
            tags,
            [c.lower() for c in countries],
        )
        await conn.execute(
            "UPDATE campaigns SET recipient_filter = $2, updated_at = now() WHERE id = $1",
            campaign_id,
            recipient_filter,
        )
    return db.affected_rows(status)


async def count_recipients(campaign_id: int) -> int:
    value = await db.fetch_val("SELECT count(*) FROM campaign_recipients WHERE campaign_id = $1", campaign_id)
    return int(value or 0)


async def recipient_status_counts(campaign_id: int) -> dict[str, int]:
    rows = await db.fetch_all(
        """
        SELECT status, count(*)::int AS count
        FROM campaign_recipients
        WHERE campaign_id = $1
        GROUP BY status
        """,
        campaign_id,
    )
    return {str(r["status"]): int(r["count"]) for r in rows}


async def list_recipients(
    campaign_id: int,
    *,
    status: str | None,
    limit: int,
    offset: int,
) -> tuple[list[dict], int]:
    rows = await db.fetch_all(
        f"""
        SELECT {RECIPIENT_COLUMNS}, c.first_name, c.last_name
        FROM campaign_recipients r
        JOIN contacts c ON c.id = r.contact_id
        WHERE r.campaign_id = $1 AND ($2::text IS NULL OR r.status = $2)
        ORDER BY r.contact_id
        LIMIT $3 OFFSET $4
        """,
        campaign_id,
        status,
        limit,
        offset,
    )
    total = await db.fetch_val(
        "SELECT count(*) FROM campaign_recipients WHERE campaign_id = $1 AND ($2::text IS NULL OR status = $2)",
        campaign_id,
        status,
    )
    return rows, int(total or 0)


async def claim_pending_recipients(campaign_id: int, *, claim_token: str, limit: int, stale_after_s: float) -> list[dict]:
    """
    Atomically claim the next batch of pending recipients for one delivery task.

    Rows claimed by another live task are skipped; claims older than `stale_after_s` are taken over.
    """
    return await db.fetch_all(
        f"""
        WITH claimed AS (
            UPDATE campaign_recipients
            SET claimed_by = $2, claimed_at = now()
            WHERE (campaign_id, contact_id) IN (
                SELECT campaign_id, contact_id
                FROM campaign_recipients
                WHERE campaign_id = $1
                  AND status = 'pending'
                  AND (claimed_by IS NULL OR claimed_at < now() - make_interval(secs => $4))
                ORDER BY contact_id
                LIMIT $3
                FOR UPDATE SKIP LOCKED
            )
            RETURNING *
        )
        SELECT {RECIPIENT_COLUMNS},
               c.first_name, c.last_name, c.company, c.position, c.country, c.city
        FROM claimed r
        JOIN contacts c ON c.id = r.contact_id
        ORDER BY r.contact_id
        """,
        campaign_id,
        claim_token,
        limit,
        float(stale_after_s),
    )


async def release_claims(campaign_id: int, *, claim_token: str) -> int:
    status = await db.execute(
        """
        UPDATE campaign_recipients
        SET claimed_by = NULL, claimed_at = NULL
        WHERE campaign_id = $1 AND claimed_by = $2 AND status = 'pending'
        """,
        campaign_id,
        claim_token,
    )
    return db.affected_rows(status)


async def mark_recipient(campaign_id: int, contact_id: int, *, status: str, error: str | None = None) -> None:
    await db.execute(
        """
        UPDATE campaign_recipients
        SET status = $3,
            error = $4,
            sent_at = CASE WHEN $3 = 'sent' THEN now() ELSE sent_at END
        WHERE campaign_id = $1 AND contact_id = $2
        """,
        campaign_id,
        contact_id,
        status,
        error,
    )


async def apply_recipient_event(campaign_id: int, contact_id: int, *, event: str) -> dict | None:
    """
    Record a tracking event. Statuses only move forward and never leave bounced/failed.
    """
    return await db.fetch_one(
        f"""
        UPDATE campaign_recipients r
        SET status = CASE
                WHEN r.status IN ('bounced', 'failed') THEN r.status
                WHEN $3 = 'bounced' AND r.status IN ('pending', 'sent') THEN 'bounced'
                WHEN $3 = 'delivered' AND r.status IN ('pending', 'sent') THEN 'delivered'
                WHEN $3 = 'opened' AND r.status IN ('pending', 'sent', 'delivered') THEN 'opened'
                WHEN $3 = 'clicked' THEN 'clicked'
                ELSE r.status
            END,
            opens = r.opens + CASE WHEN $3 = 'opened' THEN 1 ELSE 0 END,
            clicks = r.clicks + CASE WHEN $3 = 'clicked' THEN 1 ELSE 0 END,
            last_opened_at = CASE WHEN $3 = 'opened' THEN now() ELSE r.last_opened_at END,
            last_clicked_at = CASE WHEN $3 = 'clicked' THEN now() ELSE r.last_clicked_at END
        WHERE r.campaign_id = $1 AND r.contact_id = $2
        RETURNING {RECIPIENT_COLUMNS}
        """,
        campaign_id,
        contact_id,
        event,
    )
