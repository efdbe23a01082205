"""
Executors for automation actions.

Each executor receives the rule owner id, the action config and the trigger
data, and raises `ActionError` (or an HTTP/provider error) when it cannot
complete.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx
from fastapi import HTTPException

from contacts import repository as contacts_repository
from contacts import schemas as contacts_schemas
from contacts import service as contacts_service
from core import email
from core.config import env_float
from email_templates import rendering
from email_templates import repository as templates_repository

logger = logging.getLogger(__name__)


class ActionError(RuntimeError):
    pass


def max_delay_s() -> float:
    return env_float("AUTOMATION_MAX_DELAY_S", 300.0)


def webhook_timeout_s() -> float:
    return env_float("AUTOMATION_WEBHOOK_TIMEOUT_S", 10.0)


def _contact_id(context: dict[str, Any]) -> int:
    raw = context.get("contact_id")
    if raw is None or not str(raw).strip().isdigit():
        raise ActionError("No contact_id provided in trigger data.")
    return int(raw)


async def send_email(owner_id: int, config: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    field = str(config.get("contact_field") or "email")
    recipient = context.get(field)
    if not recipient:
        raise ActionError(f"No recipient found in trigger data field '{field}'.")

    template = await templates_repository.get_template(int(config["template_id"]), user_id=owner_id)
    if template is None:
        raise ActionError("Email template not found.")

    subject, _ = rendering.render(template["subject"], context)
    body, missing = rendering.render(template["body"], context, escape=True)
    sent = await email.send_email(
        email.OutgoingEmail(to_email=str(recipient), subject=subject, html_content=body)
    )
    if not sent:
        raise ActionError("Email provider is not configured.")
    return {"recipient": str(recipient), "template_id": int(template["id"]), "missing_variables": missing}


async def update_contact(owner_id: int, config: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    contact_id = _contact_id(context)
    payload = contacts_schemas.ContactUpdateRequest.model_validate(config["fields"])
    try:
        row = await contacts_service.update_contact({"id": owner_id}, contact_id, payload)
    except HTTPException as exc:
        raise ActionError(str(exc.detail)) from exc
    return {"contact_id": int(row["id"]), "fields": sorted(payload.model_fields_set)}


async def add_tag(owner_id: int, config: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    contact_id = _contact_id(context)
    tags = contacts_schemas.normalize_tags([str(config["tag"])])
    if not tags:
        raise ActionError("No tag specified.")
    row = await contacts_repository.add_tag(contact_id, user_id=owner_id, tag=tags[0])
    if row is None:
        raise ActionError(f"No contact found with id: {contact_id}")
    return {"contact_id": contact_id, "tag": tags[0]}


async def call_webhook(
    owner_id: int,
    config: dict[str, Any],
    context: dict[str, Any],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    body = {
        **(config.get("webhook_payload") or {}),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "context": context,
    }
    async with httpx.AsyncClient(timeout=webhook_timeout_s(), transport=transport) as client:
        resp = await client.post(str(config["webhook_url"]), json=body)
    if not resp.is_success:
        raise ActionError(f"Webhook request failed with status {resp.status_code}.")
    return {"status": resp.status_code}


async def delay(owner_id: int, config: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    seconds = min(max(float(config.get("delay_seconds") or 0), 0.0), max_delay_s())
    await asyncio.sleep(seconds)
    return {"delayed_s": seconds}


EXECUTORS: dict[str, Callable[[int, dict[str, Any], dict[str, Any]], Awaitable[dict[str, Any]]]] = {
    "SEND_EMAIL": send_email,
    "UPDATE_CONTACT": update_contact,
    "ADD_TAG": add_tag,
    "CALL_WEBHOOK": call_webhook,
    "DELAY": delay,
}


async def execute(owner_id: int, action: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
    executor = EXECUTORS.get(str(action.get("type")))
    if executor is None:
        raise ActionError(f"Unsupported action type: {action.get('type')}")
    return await executor(owner_id, dict(action.get("config") or {}), context)
