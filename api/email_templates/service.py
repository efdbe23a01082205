"""
Email template business logic.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import HTTPException, status

from core.pagination import offset_for

from . import rendering, repository, schemas

logger = logging.getLogger(__name__)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found.")


def _name_taken() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A template with this name already exists.")


async def _ensure_name_free(name: str, *, user_id: int, template_id: int | None = None) -> None:
    existing = await repository.get_template_by_name(name, user_id=user_id)
    if existing is not None and int(existing["id"]) != template_id:
        raise _name_taken()


async def create_template(current_user: dict, payload: schemas.TemplateCreateRequest) -> dict:
    user_id = int(current_user["id"])
    name = payload.name.strip()
    await _ensure_name_free(name, user_id=user_id)

    values = payload.model_dump()
    values["name"] = name
    if values.get("variables") is None:
        values["variables"] = rendering.extract_variables(payload.subject, payload.body)
    try:
        row = await repository.insert_template(user_id=user_id, values=values)
    except asyncpg.UniqueViolationError as exc:
        raise _name_taken() from exc
    logger.info("template_created template_id=%s user_id=%s default=%s", row["id"], user_id, row["is_default"])
    return row


async def get_template(current_user: dict, template_id: int) -> dict:
    row = await repository.get_template(template_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found()
    return row


async def update_template(current_user: dict, template_id: int, payload: schemas.TemplateUpdateRequest) -> dict:
    user_id = int(current_user["id"])
    current = await get_template(current_user, template_id)

    values = payload.model_dump(exclude_unset=True)
    for column in ("name", "subject", "body", "is_default"):
        if column in values and values[column] is None:
            values.pop(column)
    if "name" in values:
        values["name"] = values["name"].strip()
        if values["name"] != current["name"]:
            await _ensure_name_free(values["name"], user_id=user_id, template_id=template_id)
    if values.get("variables") is None and ("subject" in values or "body" in values):
        values["variables"] = rendering.extract_variables(
            values.get("subject", current["subject"]),
            values.get("body", current["body"]),
        )
    elif "variables" in values and values["variables"] is None:
        values.pop("variables")

    try:
        row = await repository.update_template(template_id, user_id=user_id, values=values)
    except asyncpg.UniqueViolationError as exc:
        raise _name_taken() from exc
    if row is None:
        raise _not_found()
    return row


async def list_templates(
    current_user: dict,
    *,
    category: str | None,
    is_default: bool | None,
    sort: str | None,
    page: int,
    limit: int,
) -> dict:
    rows, total = await repository.list_templates(
        user_id=int(current_user["id"]),
        category=category,
        is_default=is_default,
        sort=sort,
        limit=limit,
        offset=offset_for(page, limit),
    )
    return {"templates": rows, "total": total, "page": page, "limit": limit}


async def delete_template(current_user: dict, template_id: int) -> None:
    template = await get_template(current_user, template_id)
    if template["is_default"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete a default template.")
    await repository.delete_template(template_id, user_id=int(current_user["id"]))


async def list_categories(current_user: dict) -> list[str]:
    return await repository.list_categories(int(current_user["id"]))


async def get_default_template(current_user: dict, category: str | None) -> dict:
    row = await repository.get_default_template(user_id=int(current_user["id"]), category=category)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No default template found.")
    return row


async def duplicate_template(current_user: dict, template_id: int, new_name: str) -> dict:
    user_id = int(current_user["id"])
    source = await get_template(current_user, template_id)
    name = new_name.strip()
    await _ensure_name_free(name, user_id=user_id)

    values = {column: source[column] for column in repository.WRITABLE_COLUMNS}
    values["name"] = name
    values["is_default"] = False
    try:
        return await repository.insert_template(user_id=user_id, values=values)
    except asyncpg.UniqueViolationError as exc:
        raise _name_taken() from exc


async def render_template(current_user: dict, template_id: int, payload: schemas.RenderTemplateRequest) -> schemas.RenderTemplateResponse:
    template = await get_template(current_user, template_id)
    subject, missing_subject = rendering.render(template["subject"], payload.variables)
    body, missing_body = rendering.render(template["body"], payload.variables)
    preview = None
    if template.get("preview_text"):
        preview, _ = rendering.render(template["preview_text"], payload.variables)
    missing = missing_subject + [name for name in missing_body if name not in missing_subject]
    return schemas.RenderTemplateResponse(
        subject=subject,
        body=body,
        preview_text=preview,
        missing_variables=missing,
    )
