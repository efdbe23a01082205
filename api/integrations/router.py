"""
FastAPI router for integration endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/integrations")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_integration(
    payload: schemas.IntegrationCreateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"integration": await service.create_integration(current_user, payload)}


@router.get("")
async def list_integrations(
    type: schemas.IntegrationType | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    rows = await service.list_integrations(current_user, type=type, is_active=is_active)
    return {"integrations": rows, "total": len(rows)}


@router.get("/{integration_id}")
async def get_integration(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"integration": await service.get_integration(current_user, integration_id)}


@router.patch("/{integration_id}")
async def update_integration(
    integration_id: int,
    payload: schemas.IntegrationUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"integration": await service.update_integration(current_user, integration_id, payload)}


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_integration(current_user, integration_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{integration_id}/events")
async def list_events(
    integration_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_events(current_user, integration_id, page=page, limit=limit)


@router.post("/{integration_id}/test", response_model=schemas.ConnectivityResult)
async def check_integration(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.ConnectivityResult:
    return await service.check_integration(current_user, integration_id)


@router.post("/{integration_id}/webhook", status_code=status.HTTP_202_ACCEPTED)
async def queue_webhook(
    integration_id: int,
    payload: schemas.WebhookRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.queue_webhook(current_user, integration_id, payload)
