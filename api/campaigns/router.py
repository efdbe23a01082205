"""
FastAPI router for campaign endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/campaigns")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: schemas.CampaignCreateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"campaign": await service.create_campaign(current_user, payload)}


@router.get("")
async def list_campaigns(
    status_filter: list[schemas.CampaignStatus] | None = Query(default=None, alias="status"),
    sort: str = Query("-created_at", max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_campaigns(
        current_user,
        statuses=list(status_filter) if status_filter else None,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"campaign": await service.get_campaign(current_user, campaign_id)}


@router.patch("/{campaign_id}")
async def update_campaign(
    campaign_id: int,
    payload: schemas.CampaignUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"campaign": await service.update_campaign(current_user, campaign_id, payload)}


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(
    campaign_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_campaign(current_user, campaign_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{campaign_id}/status")
async def change_status(
    campaign_id: int,
    payload: schemas.StatusUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"campaign": await service.change_status(current_user, campaign_id, payload)}


@router.post("/{campaign_id}/recipients/prepare")
async def prepare_recipients(
    campaign_id: int,
    payload: schemas.RecipientFilter,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.prepare_recipients(current_user, campaign_id, payload)


@router.get("/{campaign_id}/recipients")
async def list_recipients(
    campaign_id: int,
    status_filter: schemas.RecipientStatus | None = Query(default=None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_recipients(
        current_user,
        campaign_id,
        status_filter=status_filter,
        page=page,
        limit=limit,
    )


@router.post("/{campaign_id}/recipients/{contact_id}/events")
async def record_recipient_event(
    campaign_id: int,
    contact_id: int,
    payload: schemas.RecipientEventRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.record_recipient_event(current_user, campaign_id, contact_id, payload)


@router.get("/{campaign_id}/stats", response_model=schemas.CampaignStats)
async def get_stats(
    campaign_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.CampaignStats:
    return await service.get_stats(current_user, campaign_id)


@router.post("/{campaign_id}/test")
async def send_test_email(
    campaign_id: int,
    payload: schemas.SendTestRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.send_test_email(current_user, campaign_id, payload)


@router.post("/{campaign_id}/send", status_code=status.HTTP_202_ACCEPTED)
async def send_campaign(
    campaign_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Start delivery; recipients are processed after the response is returned.
    """
    return await service.send_campaign(current_user, campaign_id, background_tasks)
