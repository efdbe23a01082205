"""
FastAPI router for automation endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/automation")


@router.post("/rules", status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: schemas.RuleCreateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"rule": await service.create_rule(current_user, payload)}


@router.get("/rules")
async def list_rules(
    trigger_type: schemas.TriggerType | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    rows = await service.list_rules(current_user, trigger_type=trigger_type, is_active=is_active)
    return {"rules": rows, "total": len(rows)}


@router.get("/rules/{rule_id}")
async def get_rule(
    rule_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"rule": await service.get_rule(current_user, rule_id)}


@router.patch("/rules/{rule_id}")
async def update_rule(
    rule_id: int,
    payload: schemas.RuleUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"rule": await service.update_rule(current_user, rule_id, payload)}


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_rule(current_user, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rules/{rule_id}/events")
async def list_events(
    rule_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_events(current_user, rule_id, page=page, limit=limit)


@router.post("/rules/{rule_id}/trigger", status_code=status.HTTP_202_ACCEPTED)
async def trigger_rule(
    rule_id: int,
    payload: schemas.TriggerRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.trigger_rule(current_user, rule_id, payload, background_tasks)
