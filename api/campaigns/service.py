"""
Campaign business logic.

Lifecycle: draft -> scheduled -> sending -> sent, with paused/cancelled side
exits. `send_campaign` claims the campaign and hands delivery to a background
task; `deliver_campaign` works through pending recipients in batches and stops
early when the campaign is paused or cancelled meanwhile.
"""

from __future__ import annotations

import logging
import math
import secrets

from fastapi import BackgroundTasks, HTTPException, status

from core import email
from core.pagination import offset_for, pagination_block
from email_templates import rendering
from notifications import service as notifications_service

from . import repository, schemas

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"scheduled", "cancelled"}),
    "scheduled": frozenset({"paused", "cancelled"}),
    "paused": frozenset({"scheduled", "cancelled"}),
    "sending": frozenset({"paused", "cancelled"}),
    "sent": frozenset(),
    "cancelled": frozenset(),
}
LOCKED_STATUSES = frozenset({"sending", "sent", "cancelled"})
SENDABLE_STATUSES = ["draft", "scheduled", "paused"]
DEFAULT_RECIPIENT_STATUSES = ["active"]

SEND_BATCH_SIZE = 50
# Claims left by a task that died are taken over after this long.
CLAIM_STALE_AFTER_S = 900.0


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found.")


def _percent(part: int, whole: int) -> int:
    # Half-up rounding, matching how the dashboards display rates.
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def stats_from_counts(counts: dict[str, int]) -> schemas.CampaignStats:
    """
    Campaign stats from recipient counts per status.

    Statuses are cumulative: an opened recipient was also sent and delivered.
    """

    def total(*statuses: str) -> int:
        return sum(int(counts.get(s, 0)) for s in statuses)

    delivered = total("delivered", "opened", "clicked")
    opened = total("opened", "clicked")
    clicked = total("clicked")
    return schemas.CampaignStats(
        total=sum(int(v) for v in counts.values()),
        sent=total("sent", "delivered", "opened", "clicked", "bounced"),
        delivered=delivered,
        opened=opened,
        clicked=clicked,
        bounced=total("bounced"),
        failed=total("failed"),
        open_rate=_percent(opened, delivered),
        click_rate=_percent(clicked, delivered),
    )


def validate_status_transition(current: str, new: str) -> None:
    if new not in VALID_TRANSITIONS.get(current, frozenset()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status transition from {current} to {new}.",
        )


async def _get_owned(current_user: dict, campaign_id: int) -> dict:
    row = await repository.get_campaign(campaign_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found()
    return row


async def campaign_stats(campaign_id: int) -> schemas.CampaignStats:
    return stats_from_counts(await repository.recipient_status_counts(campaign_id))


async def create_campaign(current_user: dict, payload: schemas.CampaignCreateRequest) -> dict:
    user_id = int(current_user["id"])
    values = payload.model_dump(mode="json")
    values["scheduled_at"] = payload.scheduled_at
    values["status"] = "scheduled" if payload.scheduled_at else "draft"
    row = await repository.insert_campaign(user_id=user_id, values=values)
    logger.info("campaign_created campaign_id=%s user_id=%s status=%s", row["id"], user_id, row["status"])
    return row


async def get_campaign(current_user: dict, campaign_id: int) -> dict:
    row = await _get_owned(current_user, campaign_id)
    return {**row, "stats": (await campaign_stats(campaign_id)).model_dump()}


async def list_campaigns(
    current_user: dict,
    *,
    statuses: list[str] | None,
    sort: str | None,
    page: int,
    limit: int,
) -> dict:
    rows, total = await repository.list_campaigns(
        user_id=int(current_user["id"]),
        statuses=statuses,
        sort=sort,
        limit=limit,
        offset=offset_for(page, limit),
    )
    return {"campaigns": rows, "total": total, "page": page, "limit": limit}


async def update_campaign(current_user: dict, campaign_id: int, payload: schemas.CampaignUpdateRequest) -> dict:
    campaign = await _get_owned(current_user, campaign_id)
    if campaign["status"] in LOCKED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot update a {campaign['status']} campaign.",
        )

    values = payload.model_dump(exclude_unset=True, mode="json")
    if "scheduled_at" in values:
        values["scheduled_at"] = payload.scheduled_at
    for column in ("name", "subject", "from_email", "from_name", "template", "recipient_filter"):
        if column in values and values[column] is None:
            values.pop(column)

    new_status = values.get("status")
    if new_status is None:
        values.pop("status", None)
    elif new_status != campaign["status"]:
        validate_status_transition(campaign["status"], new_status)
        if new_status == "scheduled" and not (values.get("scheduled_at") or campaign.get("scheduled_at")):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Scheduled time is required for scheduled campaigns.",
            )

    row = await repository.update_campaign(campaign_id, user_id=int(current_user["id"]), values=values)
    if row is None:
        raise _not_found()
    return row


async def change_status(current_user: dict, campaign_id: int, payload: schemas.StatusUpdateRequest) -> dict:
    campaign = await _get_owned(current_user, campaign_id)
    validate_status_transition(campaign["status"], payload.status)

    values: dict = {"status": payload.status}
    if payload.scheduled_at is not None:
        values["scheduled_at"] = payload.scheduled_at
    if payload.status == "scheduled" and not (payload.scheduled_at or campaign.get("scheduled_at")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Scheduled time is required for scheduled campaigns.",
        )

    row = await repository.update_campaign(campaign_id, user_id=int(current_user["id"]), values=values)
    if row is None:
        raise _not_found()
    logger.info("campaign_status_changed campaign_id=%s from=%s to=%s", campaign_id, campaign["status"], payload.status)
    return row


async def delete_campaign(current_user: dict, campaign_id: int) -> None:
    campaign = await _get_owned(current_user, campaign_id)
    if campaign["status"] == "sending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete a campaign that is currently sending.",
        )
    if not await repository.delete_campaign(campaign_id, user_id=int(current_user["id"])):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Campaign started sending; try again later.")


async def prepare_recipients(current_user: dict, campaign_id: int, payload: schemas.RecipientFilter) -> dict:
    campaign = await _get_owned(current_user, campaign_id)
    if campaign["status"] != "draft":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot update recipients for a campaign that is not in draft status.",
        )

    tags = [t.strip().lower() for t in payload.tags if t.strip()]
    countries = [c.strip() for c in payload.countries if c.strip()]
    statuses = list(payload.statuses) or DEFAULT_RECIPIENT_STATUSES
    count = await repository.replace_recipients(
        campaign_id,
        user_id=int(current_user["id"]),
        tags=tags,
        statuses=statuses,
        countries=countries,
        recipient_filter={"tags": tags, "statuses": list(payload.statuses), "countries": countries},
    )
    logger.info("campaign_recipients_prepared campaign_id=%s count=%s", campaign_id, count)
    return {"count": count}


async def list_recipients(
    current_user: dict,
    campaign_id: int,
    *,
    status_filter: str | None,
    page: int,
    limit: int,
) -> dict:
    await _get_owned(current_user, campaign_id)
    rows, total = await repository.list_recipients(
        campaign_id,
        status=status_filter,
        limit=limit,
        offset=offset_for(page, limit),
    )
    return {
        "recipients": rows,
        "pagination": pagination_block(total=total, page=page, limit=limit),
    }


async def get_stats(current_user: dict, campaign_id: int) -> schemas.CampaignStats:
    await _get_owned(current_user, campaign_id)
    return await campaign_stats(campaign_id)


def _outgoing(campaign: dict, to_email: str, variables: dict, *, subject_prefix: str = "") -> email.OutgoingEmail:
    template = campaign.get("template") or {}
    subject, _ = rendering.render(campaign.get("subject") or template.get("subject"), variables)
    body, _ = rendering.render(template.get("body"), variables, escape=True)
    return email.OutgoingEmail(
        to_email=to_email,
        subject=f"{subject_prefix}{subject}",
        html_content=body,
        from_email=campaign.get("from_email"),
        from_name=campaign.get("from_name"),
        reply_to=campaign.get("reply_to"),
    )


async def send_test_email(current_user: dict, campaign_id: int, payload: schemas.SendTestRequest) -> dict:
    campaign = await _get_owned(current_user, campaign_id)
    message = _outgoing(campaign, str(payload.email), rendering.SAMPLE_VARIABLES, subject_prefix="[TEST] ")
    sent = await email.send_email(message)
    logger.info("campaign_test_email campaign_id=%s sent=%s", campaign_id, sent)
    if not sent:
        return {"sent": False, "detail": "Email provider is not configured; message was not sent."}
    return {"sent": True, "to": str(payload.email)}


async def send_campaign(current_user: dict, campaign_id: int, background_tasks: BackgroundTasks) -> dict:
    campaign = await _get_owned(current_user, campaign_id)
    if campaign["status"] not in SENDABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot send a {campaign['status']} campaign.",
        )
    recipients = await repository.count_recipients(campaign_id)
    if recipients == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Campaign has no recipients. Prepare recipients first.",
        )

    claimed = await repository.claim_for_sending(
        campaign_id,
        user_id=int(current_user["id"]),
        from_statuses=SENDABLE_STATUSES,
    )
    if claimed is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Campaign status changed; reload and retry.")

    background_tasks.add_task(deliver_campaign_background, campaign_id)
    return {"campaign_id": campaign_id, "status": "sending", "recipients": recipients}


async def _deliver_to(campaign: dict, campaign_id: int, recipient: dict) -> None:
    contact_id = int(recipient["contact_id"])
    message = _outgoing(campaign, str(recipient["email"]), rendering.contact_variables(recipient))
    try:
        sent = await email.send_email(message)
    except email.EmailDeliveryError as exc:
        await repository.mark_recipient(campaign_id, contact_id, status="failed", error=str(exc)[:500])
        return
    if sent:
        await repository.mark_recipient(campaign_id, contact_id, status="sent")
    else:
        await repository.mark_recipient(campaign_id, contact_id, status="failed", error="Email provider is not configured.")


async def deliver_campaign(campaign_id: int) -> schemas.CampaignStats | None:
    """
    Send the campaign to every pending recipient, then mark it sent.

    Each batch is claimed for this task alone, so a second task started by a resume
    sends to disjoint recipients. Only the task that sees no pending rows left
    completes the campaign. Returns None when the campaign is gone, was paused or
    cancelled mid-way, or another task finished it.
    """
    campaign = await repository.get_campaign(campaign_id)
    if campaign is None or campaign["status"] != "sending":
        return None

    claim_token = secrets.token_hex(8)
    try:
        while True:
            batch = await repository.claim_pending_recipients(
                campaign_id,
                claim_token=claim_token,
                limit=SEND_BATCH_SIZE,
                stale_after_s=CLAIM_STALE_AFTER_S,
            )
            if not batch:
                break
            for recipient in batch:
                await _deliver_to(campaign, campaign_id, recipient)
            if await repository.get_status(campaign_id) != "sending":
                logger.info("campaign_send_interrupted campaign_id=%s", campaign_id)
                return None
    finally:
        await repository.release_claims(campaign_id, claim_token=claim_token)

    finished = await repository.complete_sending(campaign_id)
    if finished is None:
        return None

    stats = await campaign_stats(campaign_id)
    logger.info(
        "campaign_sent campaign_id=%s total=%s sent=%s failed=%s",
        campaign_id,
        stats.total,
        stats.sent,
        stats.failed,
    )
    await notifications_service.create_notification(
        user_id=int(campaign["user_id"]),
        type="CAMPAIGN",
        title="Campaign sent",
        message=f"'{campaign['name']}' was sent to {stats.sent} of {stats.total} recipients.",
        data={"campaign_id": campaign_id, "stats": stats.model_dump()},
        related_entity_type="campaign",
        related_entity_id=str(campaign_id),
    )
    return stats


async def deliver_campaign_background(campaign_id: int) -> None:
    """
    Background wrapper: failures pause the campaign so it can be resumed.
    """
    try:
        await deliver_campaign(campaign_id)
    except Exception:
        logger.exception("campaign_send_failed campaign_id=%s", campaign_id)
        await repository.pause_if_sending(campaign_id)


async def dispatch_due_campaigns() -> int:
    """
    Start delivery for scheduled campaigns whose time has come.
    """
    claimed = await repository.claim_due_scheduled()
    for campaign in claimed:
        logger.info("campaign_schedule_due campaign_id=%s", campaign["id"])
        await deliver_campaign_background(int(campaign["id"]))
    return len(claimed)


async def record_recipient_event(
    current_user: dict,
    campaign_id: int,
    contact_id: int,
    payload: schemas.RecipientEventRequest,
) -> dict:
    await _get_owned(current_user, campaign_id)
    row = await repository.apply_recipient_event(campaign_id, contact_id, event=payload.event)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found.")
    return {"recipient": row}
