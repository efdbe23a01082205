"""
Contact business logic.
"""

from __future__ import annotations

import logging
from typing import Any

import asyncpg
from fastapi import HTTPException, UploadFile, status

from core.pagination import offset_for

from . import importer, repository, schemas

logger = logging.getLogger(__name__)


def _not_found(contact_id: int) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No contact found with id: {contact_id}")


def _duplicate_email() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A contact with this email already exists.")


def _to_values(payload: schemas.ContactCreateRequest | schemas.ContactUpdateRequest, *, partial: bool) -> dict[str, Any]:
    values = payload.model_dump(exclude_unset=partial, mode="python")
    if "email" in values and values["email"] is not None:
        values["email"] = str(values["email"]).strip().lower()
    if "social_media" in values:
        values["social_media"] = values["social_media"] or []
    if "tags" in values:
        values["tags"] = values["tags"] or []
    if partial:
        # Explicit nulls are not allowed for the required columns.
        for column in ("first_name", "last_name", "email", "country", "status", "is_favorite"):
            if column in values and values[column] is None:
                values.pop(column)
    return values


def parse_tags_param(tags: str | None) -> list[str]:
    return schemas.normalize_tags((tags or "").split(","))


async def create_contact(current_user: dict, payload: schemas.ContactCreateRequest) -> dict:
    user_id = int(current_user["id"])
    try:
        row = await repository.insert_contact(user_id=user_id, values=_to_values(payload, partial=False))
    except asyncpg.UniqueViolationError as exc:
        raise _duplicate_email() from exc
    logger.info("contact_created contact_id=%s user_id=%s", row["id"], user_id)
    return row


async def list_contacts(
    current_user: dict,
    *,
    search: str | None,
    status_filter: str | None,
    verification_status: str | None,
    tags: str | None,
    country: str | None,
    is_favorite: bool | None,
    sort: str | None,
    page: int,
    limit: int,
) -> schemas.ContactListResponse:
    rows, total = await repository.list_contacts(
        user_id=int(current_user["id"]),
        search=(search or "").strip() or None,
        status=status_filter,
        verification_status=verification_status,
        tags=parse_tags_param(tags),
        country=(country or "").strip() or None,
        is_favorite=is_favorite,
        sort=sort,
        limit=limit,
        offset=offset_for(page, limit),
    )
    return schemas.ContactListResponse(contacts=rows, total=total, results=len(rows), page=page, limit=limit)


async def get_contact(current_user: dict, contact_id: int) -> dict:
    row = await repository.get_contact(contact_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found(contact_id)
    return row


async def update_contact(current_user: dict, contact_id: int, payload: schemas.ContactUpdateRequest) -> dict:
    try:
        row = await repository.update_contact(
            contact_id,
            user_id=int(current_user["id"]),
            values=_to_values(payload, partial=True),
        )
    except asyncpg.UniqueViolationError as exc:
        raise _duplicate_email() from exc
    if row is None:
        raise _not_found(contact_id)
    return row


async def delete_contact(current_user: dict, contact_id: int) -> None:
    if not await repository.delete_contact(contact_id, user_id=int(current_user["id"])):
        raise _not_found(contact_id)
    logger.info("contact_deleted contact_id=%s user_id=%s", contact_id, current_user["id"])


async def toggle_favorite(current_user: dict, contact_id: int) -> dict:
    row = await repository.toggle_favorite(contact_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found(contact_id)
    return row


async def verify_contact(current_user: dict, contact_id: int, payload: schemas.VerifyContactRequest) -> dict:
    row = await repository.set_verification_status(
        contact_id,
        user_id=int(current_user["id"]),
        status=payload.status,
    )
    if row is None:
        raise _not_found(contact_id)
    return row


async def contact_stats(current_user: dict) -> dict:
    rows = await repository.status_counts(int(current_user["id"]))
    by_status = {s: 0 for s in schemas.CONTACT_STATUSES}
    for row in rows:
        by_status[str(row["status"])] = int(row["count"])
    return {"total": sum(by_status.values()), "by_status": by_status, "stats": rows}


async def find_duplicates(current_user: dict) -> dict:
    groups = await repository.duplicate_groups(int(current_user["id"]))
    return {"groups": groups, "count": len(groups)}


async def import_contacts(current_user: dict, file: UploadFile) -> schemas.ImportResult:
    """
    Create contacts from an uploaded CSV file.

    Rows whose email already exists for the owner (or earlier in the same file)
    are skipped; invalid rows are reported with their line number.
    """
    user_id = int(current_user["id"])
    importer.validate_upload(file)
    data = await importer.read_upload_bytes(file, max_bytes=importer.max_upload_bytes())
    parsed = importer.parse_csv(data)

    known = await repository.existing_emails(user_id, [str(c.email) for _, c in parsed.contacts])
    created = 0
    duplicates = 0
    errors = list(parsed.errors)

    for row_number, contact in parsed.contacts:
        email = str(contact.email).lower()
        if email in known:
            duplicates += 1
            continue
        try:
            await repository.insert_contact(user_id=user_id, values=_to_values(contact, partial=False))
        except asyncpg.UniqueViolationError:
            duplicates += 1
            continue
        except asyncpg.PostgresError as exc:
            errors.append(schemas.ImportRowError(row=row_number, error=str(exc)))
            continue
        known.add(email)
        created += 1

    logger.info(
        "contacts_imported user_id=%s rows=%s created=%s duplicates=%s failed=%s",
        user_id,
        parsed.total_rows,
        created,
        duplicates,
        len(errors),
    )
    return schemas.ImportResult(
        total_rows=parsed.total_rows,
        created=created,
        skipped_duplicates=duplicates,
        failed=len(errors),
        errors=sorted(errors, key=lambda e: e.row),
    )
