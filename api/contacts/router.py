"""
FastAPI router for contact endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/contacts")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contact(
    payload: schemas.ContactCreateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    contact = await service.create_contact(current_user, payload)
    return {"contact": contact}


@router.get("", response_model=schemas.ContactListResponse)
async def list_contacts(
    search: str | None = Query(default=None, max_length=200),
    status_filter: schemas.ContactStatus | None = Query(default=None, alias="status"),
    verification_status: schemas.VerificationStatus | None = Query(default=None),
    tags: str | None = Query(default=None, max_length=500, description="Comma-separated; all must match."),
    country: str | None = Query(default=None, max_length=100),
    is_favorite: bool | None = Query(default=None),
    sort: str = Query("-created_at", max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.ContactListResponse:
    return await service.list_contacts(
        current_user,
        search=search,
        status_filter=status_filter,
        verification_status=verification_status,
        tags=tags,
        country=country,
        is_favorite=is_favorite,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/stats")
async def contact_stats(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return await service.contact_stats(current_user)


@router.get("/duplicates")
async def find_duplicates(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return await service.find_duplicates(current_user)


@router.post("/import", response_model=schemas.ImportResult)
async def import_contacts(
    file: UploadFile = File(...),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.ImportResult:
    """
    Import contacts from a `.csv` upload (header row required, `email` column mandatory).
    """
    return await service.import_contacts(current_user, file)


@router.get("/{contact_id}")
async def get_contact(
    contact_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"contact": await service.get_contact(current_user, contact_id)}


@router.patch("/{contact_id}")
async def update_contact(
    contact_id: int,
    payload: schemas.ContactUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"contact": await service.update_contact(current_user, contact_id, payload)}


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_contact(current_user, contact_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{contact_id}/favorite")
async def toggle_favorite(
    contact_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"contact": await service.toggle_favorite(current_user, contact_id)}


@router.post("/{contact_id}/verify")
async def verify_contact(
    contact_id: int,
    payload: schemas.VerifyContactRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"contact": await service.verify_contact(current_user, contact_id, payload)}
