"""
Analytics business logic.

Date ranges are whole UTC days: `start_date` inclusive, `end_date` inclusive.
Rates are percentages rounded to two decimals.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from fastapi import HTTPException, Response, status

from contacts import repository as contacts_repository
from contacts import schemas as contacts_schemas
from core import email
from notifications import repository as notifications_repository
from notifications import service as notifications_service

from . import reports, repository, schemas

logger = logging.getLogger(__name__)

CAMPAIGN_STATUSES: tuple[str, ...] = ("draft", "scheduled", "sending", "sent", "paused", "cancelled")
TIMELINE_DAYS = 30
DASHBOARD_RECENT_CAMPAIGNS = 5


def _rate(part: int, whole: int) -> float:
    return round(part * 100 / whole, 2) if whole > 0 else 0.0


def _utc_day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def resolve_range(start_date: date | None, end_date: date | None, *, default_days: int) -> tuple[date, date]:
    end = end_date or datetime.now(timezone.utc).date()
    start = start_date or end - timedelta(days=default_days)
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date.")
    return start, end


def _with_rates(row: dict[str, Any]) -> dict[str, Any]:
    total = int(row.get("total") or 0)
    opened = int(row.get("opened") or 0)
    return {
        **row,
        "delivery_rate": _rate(int(row.get("delivered") or 0), total),
        "open_rate": _rate(opened, total),
        "click_rate": _rate(int(row.get("clicked") or 0), total),
        "ctr": _rate(int(row.get("clicked") or 0), opened),
    }


def fill_days(rows: list[dict], start: date, end: date) -> list[dict]:
    by_day = {r["day"]: r for r in rows}
    days: list[dict] = []
    current = start
    while current <= end:
        row = by_day.get(current, {})
        days.append(
            {
                "date": current.isoformat(),
                "sent": int(row.get("sent") or 0),
                "opened": int(row.get("opened") or 0),
                "clicked": int(row.get("clicked") or 0),
            }
        )
        current += timedelta(days=1)
    return days


async def campaign_performance(
    current_user: dict,
    *,
    start_date: date | None,
    end_date: date | None,
    campaign_id: int | None,
    statuses: list[str] | None,
) -> dict:
    start, end = resolve_range(start_date, end_date, default_days=30)
    rows = await repository.campaign_performance(
        user_id=int(current_user["id"]),
        start=_utc_day_start(start),
        end=_utc_day_start(end + timedelta(days=1)),
        campaign_id=campaign_id,
        statuses=statuses,
    )
    return {
        "campaigns": [_with_rates(r) for r in rows],
        "date_range": {"start_date": start.isoformat(), "end_date": end.isoformat()},
    }


async def campaign_analytics(current_user: dict, campaign_id: int) -> dict:
    user_id = int(current_user["id"])
    rows = await repository.campaign_performance(
        user_id=user_id,
        start=None,
        end=None,
        campaign_id=campaign_id,
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found.")

    today = datetime.now(timezone.utc).date()
    first_day = today - timedelta(days=TIMELINE_DAYS)
    activity = await repository.daily_activity(
        user_id=user_id,
        start=_utc_day_start(first_day),
        end=_utc_day_start(today + timedelta(days=1)),
        campaign_id=campaign_id,
    )
    return {**_with_rates(rows[0]), "timeline": fill_days(activity, first_day, today)}


async def user_engagement(current_user: dict, *, start_date: date | None, end_date: date | None) -> dict:
    start, end = resolve_range(start_date, end_date, default_days=7)
    activity = await repository.daily_activity(
        user_id=int(current_user["id"]),
        start=_utc_day_start(start),
        end=_utc_day_start(end + timedelta(days=1)),
    )
    days = fill_days(activity, start, end)
    totals = {key: sum(d[key] for d in days) for key in ("sent", "opened", "clicked")}
    day_count = len(days)
    return {
        "date_range": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "days": days,
        "totals": totals,
        "averages": {key: round(value / day_count, 2) if day_count else 0.0 for key, value in totals.items()},
        "open_rate": _rate(totals["opened"], totals["sent"]),
        "click_rate": _rate(totals["clicked"], totals["sent"]),
        "ctr": _rate(totals["clicked"], totals["opened"]),
    }


async def dashboard(current_user: dict) -> dict:
    user_id = int(current_user["id"])
    contact_rows = await contacts_repository.status_counts(user_id)
    contacts_by_status = {s: 0 for s in contacts_schemas.CONTACT_STATUSES}
    for row in contact_rows:
        contacts_by_status[str(row["status"])] = int(row["count"])

    campaign_counts = await repository.campaign_status_counts(user_id)
    campaigns_by_status = {s: int(campaign_counts.get(s, 0)) for s in CAMPAIGN_STATUSES}

    recent = await repository.campaign_performance(
        user_id=user_id,
        start=None,
        end=None,
        limit=DASHBOARD_RECENT_CAMPAIGNS,
    )
    return {
        "contacts": {"total": sum(contacts_by_status.values()), "by_status": contacts_by_status},
        "campaigns": {"total": sum(campaigns_by_status.values()), "by_status": campaigns_by_status},
        "recent_campaigns": [_with_rates(r) for r in recent],
        "unread_notifications": await notifications_repository.unread_count(user_id),
    }


async def report_rows(
    current_user: dict,
    report_type: str,
    *,
    start_date: date | None,
    end_date: date | None,
    campaign_id: int | None = None,
    statuses: list[str] | None = None,
) -> tuple[list[dict], dict]:
    if report_type == "campaign-performance":
        result = await campaign_performance(
            current_user,
            start_date=start_date,
            end_date=end_date,
            campaign_id=campaign_id,
            statuses=statuses,
        )
        return result["campaigns"], result["date_range"]
    if report_type == "user-engagement":
        result = await user_engagement(current_user, start_date=start_date, end_date=end_date)
        return result["days"], result["date_range"]
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid report type: {report_type}")


def _report_filename(report_type: str, generated_at: datetime, fmt: str) -> str:
    return f"{report_type}-{generated_at.strftime('%Y%m%dT%H%M%SZ')}.{fmt}"


async def generate_report(
    current_user: dict,
    *,
    report_type: str,
    fmt: str,
    start_date: date | None,
    end_date: date | None,
    campaign_id: int | None,
    statuses: list[str] | None,
) -> dict | Response:
    rows, date_range = await report_rows(
        current_user,
        report_type,
        start_date=start_date,
        end_date=end_date,
        campaign_id=campaign_id,
        statuses=statuses,
    )
    generated_at = datetime.now(timezone.utc)
    if fmt == "csv":
        return Response(
            content=reports.to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{_report_filename(report_type, generated_at, "csv")}"'},
        )
    return {
        "data": rows,
        "metadata": {
            "generated_at": generated_at.isoformat(),
            "report_type": report_type,
            "date_range": date_range,
            "filters": {"campaign_id": campaign_id, "status": statuses},
        },
    }


async def schedule_report(current_user: dict, payload: schemas.ScheduleReportRequest) -> dict:
    user_id = int(current_user["id"])
    schedule = payload.schedule.model_dump(mode="json")
    next_run_at = reports.first_run_at(payload.schedule.frequency, payload.schedule.time_of_day)
    if payload.schedule.frequency == "monthly":
        schedule["anchor_day"] = next_run_at.day
    row = await repository.insert_scheduled_report(
        user_id=user_id,
        report_type=payload.report_type,
        schedule=schedule,
        filters=payload.filters,
        options=payload.options.model_dump(),
        next_run_at=next_run_at,
    )
    logger.info(
        "report_scheduled report_id=%s user_id=%s type=%s frequency=%s next_run_at=%s",
        row["id"],
        user_id,
        payload.report_type,
        payload.schedule.frequency,
        row["next_run_at"],
    )
    return row


async def list_scheduled_reports(current_user: dict) -> list[dict]:
    return await repository.list_scheduled_reports(int(current_user["id"]))


async def delete_scheduled_report(current_user: dict, report_id: int) -> None:
    if not await repository.delete_scheduled_report(report_id, user_id=int(current_user["id"])):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scheduled report not found.")


async def deliver_report(report: dict, *, now: datetime) -> int:
    """
    Build one scheduled report and email it to its recipients. Returns emails sent.
    """
    schedule = report["schedule"] or {}
    filters = report["filters"] or {}
    options = report["options"] or {}
    owner = {"id": int(report["user_id"])}

    window = reports.FREQUENCY_WINDOW_DAYS.get(str(schedule.get("frequency")), 7)
    end_day = now.date()
    raw_campaign_id = filters.get("campaign_id")
    rows, date_range = await report_rows(
        owner,
        str(report["report_type"]),
        start_date=end_day - timedelta(days=window),
        end_date=end_day,
        campaign_id=int(raw_campaign_id) if raw_campaign_id is not None else None,
        statuses=filters.get("status") or None,
    )

    fmt = str(schedule.get("format") or "csv")
    if fmt == "csv":
        attachment = email.EmailAttachment(
            filename=_report_filename(str(report["report_type"]), now, "csv"),
            content=reports.to_csv(rows).encode("utf-8"),
            mime_type="text/csv",
        )
    else:
        attachment = email.EmailAttachment(
            filename=_report_filename(str(report["report_type"]), now, "json"),
            content=reports.json_bytes({"data": rows, "date_range": date_range}),
            mime_type="application/json",
        )

    subject = options.get("email_subject") or f"Your {report['report_type']} report"
    body = options.get("email_body") or (
        f"<p>Attached is your {schedule.get('frequency', '')} {report['report_type']} report "
        f"for {date_range['start_date']} to {date_range['end_date']}.</p>"
    )
    sent = 0
    for recipient in schedule.get("recipients") or []:
        delivered = await email.send_email(
            email.OutgoingEmail(to_email=str(recipient), subject=subject, html_content=body, attachments=(attachment,))
        )
        sent += 1 if delivered else 0
    return sent


async def run_due_reports(*, now: datetime | None = None) -> int:
    """
    Deliver every scheduled report that is due. Used by the periodic scheduler.
    """
    now = now or datetime.now(timezone.utc)
    processed = 0
    for report in await repository.due_reports(now):
        schedule = report["schedule"] or {}
        frequency = str(schedule.get("frequency") or "weekly")
        next_run = reports.next_run_after(
            report["next_run_at"],
            frequency,
            now=now,
            anchor_day=schedule.get("anchor_day"),
        )
        if not await repository.set_next_run(int(report["id"]), previous=report["next_run_at"], next_run_at=next_run):
            continue
        try:
            sent = await deliver_report(report, now=now)
            logger.info("scheduled_report_sent report_id=%s emails=%s next_run_at=%s", report["id"], sent, next_run)
            await notifications_service.create_notification(
                user_id=int(report["user_id"]),
                type="SYSTEM",
                title="Scheduled report sent",
                message=f"Your {report['report_type']} report was sent to {sent} recipient(s).",
                data={"report_id": int(report["id"]), "emails_sent": sent},
                related_entity_type="scheduled_report",
                related_entity_id=str(report["id"]),
                channels=["IN_APP"],
            )
        except Exception:
            logger.exception("scheduled_report_failed report_id=%s", report["id"])
            continue
        processed += 1
    return processed
