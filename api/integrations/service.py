"""
Integration business logic.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from core import email
from core.pagination import offset_for, pagination_block

from . import credentials, repository, schemas
from .webhooks import record_event, webhook_queue

logger = logging.getLogger(__name__)

INTEGRATION_CREATED = "INTEGRATION_CREATED"
INTEGRATION_UPDATED = "INTEGRATION_UPDATED"
INTEGRATION_TESTED = "INTEGRATION_TESTED"
WEBHOOK_QUEUED = "WEBHOOK_QUEUED"

REQUIRED_CONFIG_KEYS: dict[str, tuple[str, ...]] = {
    "EMAIL_PROVIDER": ("api_key",),
    "SOCIAL_MEDIA": ("api_key",),
    "PAYMENT_GATEWAY": ("api_key", "api_secret"),
    "ANALYTICS": ("api_key",),
    "OTHER": (),
}


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found.")


async def _get_owned(current_user: dict, integration_id: int) -> dict:
    row = await repository.get_integration(integration_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found()
    return row


async def create_integration(current_user: dict, payload: schemas.IntegrationCreateRequest) -> dict:
    user_id = int(current_user["id"])
    row = await repository.insert_integration(
        user_id=user_id,
        name=payload.name.strip(),
        type=payload.type,
        config=credentials.encrypt_config(payload.config),
    )
    await record_event(int(row["id"]), INTEGRATION_CREATED, {"type": payload.type})
    logger.info("integration_created integration_id=%s user_id=%s type=%s", row["id"], user_id, payload.type)
    return credentials.public_integration(row)


async def list_integrations(current_user: dict, *, type: str | None, is_active: bool | None) -> list[dict]:
    rows = await repository.list_integrations(user_id=int(current_user["id"]), type=type, is_active=is_active)
    return [credentials.public_integration(r) for r in rows]


async def get_integration(current_user: dict, integration_id: int) -> dict:
    return credentials.public_integration(await _get_owned(current_user, integration_id))


async def update_integration(current_user: dict, integration_id: int, payload: schemas.IntegrationUpdateRequest) -> dict:
    current = await _get_owned(current_user, integration_id)
    values = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "name" in values:
        values["name"] = values["name"].strip()
    if "config" in values:
        values["config"] = credentials.merge_config(current["config"] or {}, payload.config or {})

    row = await repository.update_integration(integration_id, user_id=int(current_user["id"]), values=values)
    if row is None:
        raise _not_found()
    await record_event(integration_id, INTEGRATION_UPDATED, {"fields": sorted(values)})
    return credentials.public_integration(row)


async def delete_integration(current_user: dict, integration_id: int) -> None:
    if not await repository.delete_integration(integration_id, user_id=int(current_user["id"])):
        raise _not_found()
    logger.info("integration_deleted integration_id=%s user_id=%s", integration_id, current_user["id"])


async def list_events(current_user: dict, integration_id: int, *, page: int, limit: int) -> dict:
    await _get_owned(current_user, integration_id)
    rows, total = await repository.list_events(integration_id, limit=limit, offset=offset_for(page, limit))
    return {"events": rows, "pagination": pagination_block(total=total, page=page, limit=limit)}


async def _check_connectivity(integration_type: str, config: dict) -> schemas.ConnectivityResult:
    missing = [k for k in REQUIRED_CONFIG_KEYS.get(integration_type, ()) if not config.get(k)]
    if missing:
        return schemas.ConnectivityResult(success=False, message=f"Missing config keys: {', '.join(missing)}")

    if integration_type == "EMAIL_PROVIDER":
        try:
            ok = await email.check_credentials(str(config["api_key"]))
        except email.EmailDeliveryError as exc:
            return schemas.ConnectivityResult(success=False, message=str(exc))
        if not ok:
            return schemas.ConnectivityResult(success=False, message="Email provider rejected the API key.")
        return schemas.ConnectivityResult(success=True, message="Email provider credentials are valid.")

    return schemas.ConnectivityResult(success=True, message="Integration configuration looks complete.")


async def check_integration(current_user: dict, integration_id: int) -> schemas.ConnectivityResult:
    integration = await _get_owned(current_user, integration_id)
    config = credentials.decrypt_config(integration["config"] or {})
    result = await _check_connectivity(str(integration["type"]), config)
    await record_event(integration_id, INTEGRATION_TESTED, result.model_dump())
    logger.info("integration_tested integration_id=%s success=%s", integration_id, result.success)
    return result


async def queue_webhook(current_user: dict, integration_id: int, payload: schemas.WebhookRequest) -> dict:
    integration = await _get_owned(current_user, integration_id)
    if not integration["is_active"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Integration is inactive.")
    if not (integration["config"] or {}).get("webhook_url"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Integration has no webhook_url configured.")

    job = webhook_queue.enqueue(integration_id, payload.event_type, payload.payload)
    await record_event(integration_id, WEBHOOK_QUEUED, {"job_id": job.id, "event_type": payload.event_type})
    return {"event_id": job.id, "status": "queued"}
