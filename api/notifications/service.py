"""
Notification business logic.

`create_notification` is the entry point other modules use (campaign
completion, integrations, automation). Each requested channel is delivered
independently and its row ends up DELIVERED or FAILED with the error text.
"""

from __future__ import annotations

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Any

from auth import repository as auth_repository
from core import email
from core.pagination import offset_for, pagination_block

from . import repository, schemas
from .websocket import manager

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS: tuple[str, ...] = ("IN_APP", "EMAIL")


class NotificationDeliveryError(RuntimeError):
    pass


def _email_html(name: str | None, notification: dict) -> str:
    greeting = f"Hi {html.escape(name)}," if name else "Hi,"
    return (
        f"<p>{greeting}</p>"
        f"<h2>{html.escape(str(notification['title']))}</h2>"
        f"<p>{html.escape(str(notification['message']))}</p>"
    )


async def _deliver_in_app(notification: dict) -> None:
    sockets = await manager.send_to_user(int(notification["user_id"]), "notification:new", notification)
    logger.debug("notification_pushed notification_id=%s sockets=%s", notification["id"], sockets)


async def _deliver_email(notification: dict) -> None:
    user = await auth_repository.get_user_by_id(int(notification["user_id"]))
    if user is None or not user.get("email"):
        raise NotificationDeliveryError("User email not found.")
    sent = await email.send_email(
        email.OutgoingEmail(
            to_email=str(user["email"]),
            subject=str(notification["title"]),
            html_content=_email_html(user.get("name"), notification),
            text_content=str(notification["message"]),
        )
    )
    if not sent:
        raise NotificationDeliveryError("Email provider is not configured.")


async def _deliver_logged(notification: dict, channel: str) -> None:
    # No push/SMS provider is wired up; the send is recorded in the log only.
    logger.info(
        "notification_%s_sent notification_id=%s user_id=%s title=%r",
        channel.lower(),
        notification["id"],
        notification["user_id"],
        notification["title"],
    )


async def _deliver(notification: dict, channel: str) -> dict:
    try:
        if channel == "IN_APP":
            await _deliver_in_app(notification)
        elif channel == "EMAIL":
            await _deliver_email(notification)
        else:
            await _deliver_logged(notification, channel)
    except Exception as exc:
        logger.warning(
            "notification_delivery_failed notification_id=%s channel=%s error=%s",
            notification["id"],
            channel,
            exc,
        )
        row = await repository.mark_channel(int(notification["id"]), channel, status="FAILED", error=str(exc)[:500])
    else:
        row = await repository.mark_channel(int(notification["id"]), channel, status="DELIVERED")
    return row or {"channel": channel, "status": "PENDING", "delivered_at": None, "error": None}


async def create_notification(
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
    channels: list[str] | None = None,
) -> dict:
    requested = list(dict.fromkeys(channels or DEFAULT_CHANNELS))
    disabled = await repository.disabled_channels(user_id, type)
    enabled = [c for c in requested if c not in disabled]

    notification = await repository.insert_notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data or {},
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        channels=enabled,
    )
    notification["channels"] = list(await asyncio.gather(*(_deliver(notification, c) for c in enabled)))
    logger.info(
        "notification_created notification_id=%s user_id=%s type=%s channels=%s skipped=%s",
        notification["id"],
        user_id,
        type,
        ",".join(enabled) or "-",
        ",".join(c for c in requested if c in disabled) or "-",
    )
    return notification


async def list_notifications(
    current_user: dict,
    *,
    page: int,
    page_size: int,
    read: bool | None,
    type: str | None,
    channel: str | None,
) -> dict:
    rows, total = await repository.list_notifications(
        user_id=int(current_user["id"]),
        read=read,
        type=type,
        channel=channel,
        limit=page_size,
        offset=offset_for(page, page_size),
    )
    return {"notifications": rows, "pagination": pagination_block(total=total, page=page, limit=page_size)}


async def unread_count(current_user: dict) -> dict:
    return {"count": await repository.unread_count(int(current_user["id"]))}


async def mark_read(current_user: dict, payload: schemas.MarkReadRequest) -> dict:
    user_id = int(current_user["id"])
    updated = await repository.mark_read(user_id, list(dict.fromkeys(payload.notification_ids)))
    if updated:
        await manager.send_to_user(
            user_id,
            "notifications:read",
            {"notification_ids": updated, "read_at": datetime.now(timezone.utc)},
        )
    return {"updated": len(updated), "notification_ids": updated}


def default_preferences() -> list[tuple[str, str, bool]]:
    return [(t, c, True) for t in schemas.NOTIFICATION_TYPES for c in schemas.NOTIFICATION_CHANNELS]


async def get_preferences(current_user: dict) -> dict:
    """
    Return the caller's preferences, creating the all-enabled defaults on first read.
    """
    user_id = int(current_user["id"])
    rows = await repository.list_preferences(user_id)
    if not rows:
        await repository.insert_missing_preferences(user_id, default_preferences())
        rows = await repository.list_preferences(user_id)
    return {"preferences": rows}


async def update_preferences(current_user: dict, payload: schemas.PreferencesUpdateRequest) -> dict:
    user_id = int(current_user["id"])
    await repository.insert_missing_preferences(user_id, default_preferences())
    await repository.upsert_preferences(user_id, [(u.type, u.channel, u.enabled) for u in payload.updates])
    return {"preferences": await repository.list_preferences(user_id)}


async def send_test(current_user: dict, payload: schemas.SampleNotificationRequest) -> dict:
    return await create_notification(
        user_id=int(current_user["id"]),
        type=payload.type,
        title=payload.title,
        message=payload.message,
        data=payload.data,
        channels=list(payload.channels) if payload.channels else None,
    )
