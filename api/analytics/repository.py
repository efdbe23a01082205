"""
Analytics queries (read-only aggregates) and scheduled report storage.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from core import db

# Recipient statuses are cumulative: clicked implies opened, delivered and sent.
RECIPIENT_AGGREGATES = """
    count(r.contact_id)::int AS total,
    count(*) FILTER (WHERE r.status IN ('sent', 'delivered', 'opened', 'clicked'))::int AS sent,
    count(*) FILTER (WHERE r.status IN ('delivered', 'opened', 'clicked'))::int AS delivered,
    count(*) FILTER (WHERE r.status IN ('opened', 'clicked'))::int AS opened,
    count(*) FILTER (WHERE r.status = 'clicked')::int AS clicked,
    count(*) FILTER (WHERE r.status = 'bounced')::int AS bounced,
    count(*) FILTER (WHERE r.status = 'failed')::int AS failed,
    COALESCE(sum(r.opens), 0)::int AS total_opens,
    COALESCE(sum(r.clicks), 0)::int AS total_clicks
"""

REPORT_COLUMNS = "id, user_id, report_type, schedule, filters, options, is_active, next_run_at, created_at"


async def campaign_performance(
    *,
    user_id: int,
    start: datetime | None,
    end: datetime | None,
    campaign_id: int | None = None,
    statuses: list[str] | None = None,
    limit: int | None = None,
) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT c.id, c.name, c.status, c.scheduled_at, c.sent_at, c.completed_at, c.created_at,
               {RECIPIENT_AGGREGATES}
        FROM campaigns c
        LEFT JOIN campaign_recipients r ON r.campaign_id = c.id
        WHERE c.user_id = $1
          AND ($2::timestamptz IS NULL OR c.created_at >= $2)
          AND ($3::timestamptz IS NULL OR c.created_at < $3)
          AND ($4::bigint IS NULL OR c.id = $4)
          AND ($5::text[] IS NULL OR c.status = ANY($5))
        GROUP BY c.id
        ORDER BY c.created_at DESC, c.id DESC
        LIMIT $6
        """,
        user_id,
        start,
        end,
        campaign_id,
        statuses or None,
        limit,
    )


async def daily_activity(
    *,
    user_id: int,
    start: datetime,
    end: datetime,
    campaign_id: int | None = None,
) -> list[dict]:
    """
    Per-day (UTC) counts of sends, opens and clicks for the owner's campaigns.

    Opens and clicks are counted on the day of a recipient's latest one.
    """
    return await db.fetch_all(
        """
        WITH owned AS (
            SELECT r.*
            FROM campaign_recipients r
            JOIN campaigns c ON c.id = r.campaign_id
            WHERE c.user_id = $1 AND ($4::bigint IS NULL OR c.id = $4)
        ),
        activity AS (
            SELECT (sent_at AT TIME ZONE 'UTC')::date AS day, 1 AS sent, 0 AS opened, 0 AS clicked
            FROM owned WHERE sent_at >= $2 AND sent_at < $3
            UNION ALL
            SELECT (last_opened_at AT TIME ZONE 'UTC')::date, 0, 1, 0
            FROM owned WHERE last_opened_at >= $2 AND last_opened_at < $3
            UNION ALL
            SELECT (last_clicked_at AT TIME ZONE 'UTC')::date, 0, 0, 1
            FROM owned WHERE last_clicked_at >= $2 AND last_clicked_at < $3
        )
        SELECT day, sum(sent)::int AS sent, sum(opened)::int AS opened, sum(clicked)::int AS clicked
        FROM activity
        GROUP BY day
        ORDER BY day
        """,
        user_id,
        start,
        end,
        campaign_id,
    )


async def campaign_status_counts(user_id: int) -> dict[str, int]:
    rows = await db.fetch_all(
        "SELECT status, count(*)::int AS count FROM campaigns WHERE user_id = $1 GROUP BY status",
        user_id,
    )
    return {str(r["status"]): int(r["count"]) for r in rows}


async def send_history(user_id: int, *, since: datetime) -> list[dict]:
    """
    Sent recipients bucketed by (weekday, hour) of their send time, UTC.

    weekday follows Postgres `dow`: 0 = Sunday.
    """
    return await db.fetch_all(
        """
        SELECT extract(dow FROM r.sent_at AT TIME ZONE 'UTC')::int AS weekday,
               extract(hour FROM r.sent_at AT TIME ZONE 'UTC')::int AS hour,
               count(*)::int AS sent,
               count(*) FILTER (WHERE r.status IN ('opened', 'clicked'))::int AS opened,
               count(*) FILTER (WHERE r.status = 'clicked')::int AS clicked
        FROM campaign_recipients r
        JOIN campaigns c ON c.id = r.campaign_id
        WHERE c.user_id = $1 AND r.sent_at IS NOT NULL AND r.sent_at >= $2
        GROUP BY 1, 2
        """,
        user_id,
        since,
    )


async def sent_campaign_count(user_id: int, *, since: datetime) -> int:
    value = await db.fetch_val(
        """
        SELECT count(DISTINCT c.id)
        FROM campaigns c
        JOIN campaign_recipients r ON r.campaign_id = c.id
        WHERE c.user_id = $1 AND r.sent_at IS NOT NULL AND r.sent_at >= $2
        """,
        user_id,
        since,
    )
    return int(value or 0)


async def insert_scheduled_report(
    *,
    user_id: int,
    report_type: str,
    schedule: dict[str, Any],
    filters: dict[str, Any],
    options: dict[str, Any],
    next_run_at: datetime,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO scheduled_reports (user_id, report_type, schedule, filters, options, next_run_at)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING {REPORT_COLUMNS}
        """,
        user_id,
        report_type,
        schedule,
        filters,
        options,
        next_run_at,
    )
    if row is None:
        raise RuntimeError("Failed to schedule report.")
    return row


async def list_scheduled_reports(user_id: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {REPORT_COLUMNS}
        FROM scheduled_reports
        WHERE user_id = $1
        ORDER BY next_run_at, id
        """,
        user_id,
    )


async def delete_scheduled_report(report_id: int, *, user_id: int) -> bool:
    status = await db.execute("DELETE FROM scheduled_reports WHERE id = $1 AND user_id = $2", report_id, user_id)
    return db.affected_rows(status) > 0


async def due_reports(now: datetime, *, limit: int = 20) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {REPORT_COLUMNS}
        FROM scheduled_reports
        WHERE is_active AND next_run_at <= $1
        ORDER BY next_run_at, id
        LIMIT $2
        """,
        now,
        limit,
    )


async def set_next_run(report_id: int, *, previous: datetime, next_run_at: datetime) -> bool:
    """
    Move a report's next run forward; False when another worker already did.
    """
    status = await db.execute(
        "UPDATE scheduled_reports SET next_run_at = $3 WHERE id = $1 AND next_run_at = $2",
        report_id,
        previous,
        next_run_at,
    )
    return db.affected_rows(status) > 0
