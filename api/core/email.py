"""
Email provider client (SendGrid v3 mail/send over httpx).

When `SENDGRID_API_KEY` is not set, sending is disabled: calls are logged and
reported as not sent instead of failing, which keeps local development usable.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import env_float, env_str

SENDGRID_BASE_URL = "https://api.sendgrid.com"

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class OutgoingEmail:
    to_email: str
    subject: str
    html_content: str
    text_content: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    reply_to: str | None = None
    attachments: tuple[EmailAttachment, ...] = field(default_factory=tuple)


def sendgrid_api_key() -> str:
    return env_str("SENDGRID_API_KEY")


def sendgrid_base_url() -> str:
    return env_str("SENDGRID_BASE_URL", SENDGRID_BASE_URL)


def default_from_email() -> str:
    return env_str("EMAIL_FROM", "noreply@musicpromo.local")


def default_from_name() -> str:
    return env_str("EMAIL_FROM_NAME", "Music Promo CRM")


def email_timeout_s() -> float:
    return env_float("EMAIL_TIMEOUT_S", 20.0)


def is_enabled() -> bool:
    return bool(sendgrid_api_key())


def build_payload(message: OutgoingEmail) -> dict[str, Any]:
    content: list[dict[str, str]] = []
    if message.text_content:
        content.append({"type": "text/plain", "value": message.text_content})
    content.append({"type": "text/html", "value": message.html_content})

    payload: dict[str, Any] = {
        "personalizations": [{"to": [{"email": message.to_email}]}],
        "from": {
            "email": message.from_email or default_from_email(),
            "name": message.from_name or default_from_name(),
        },
        "subject": message.subject,
        "content": content,
    }
    if message.reply_to:
        payload["reply_to"] = {"email": message.reply_to}
    if message.attachments:
        payload["attachments"] = [
            {
                "content": base64.b64encode(a.content).decode("ascii"),
                "filename": a.filename,
                "type": a.mime_type,
                "disposition": "attachment",
            }
            for a in message.attachments
        ]
    return payload


async def send_email(
    message: OutgoingEmail,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """
    Send one email. Returns False when sending is disabled, raises on provider errors.
    """
    if not is_enabled():
        logger.info("email_skipped reason=disabled to=%s subject=%r", message.to_email, message.subject)
        return False

    try:
        async with httpx.AsyncClient(
            base_url=sendgrid_base_url(),
            timeout=email_timeout_s(),
            transport=transport,
        ) as client:
            resp = await client.post(
                "/v3/mail/send",
                json=build_payload(message),
                headers={"Authorization": f"Bearer {sendgrid_api_key()}"},
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Email provider request failed: {exc}") from exc

    if resp.status_code not in (200, 202):
        raise EmailDeliveryError(f"Email provider rejected message: {resp.status_code} {resp.text[:300]}")

    logger.info("email_sent to=%s subject=%r", message.to_email, message.subject)
    return True


async def check_credentials(
    api_key: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """
    Validate an API key against the provider's scopes endpoint.
    """
    try:
        async with httpx.AsyncClient(
            base_url=sendgrid_base_url(),
            timeout=email_timeout_s(),
            transport=transport,
        ) as client:
            resp = await client.get("/v3/scopes", headers={"Authorization": f"Bearer {api_key}"})
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Email provider request failed: {exc}") from exc
    return resp.status_code == 200
