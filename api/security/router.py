"""
Security API endpoints.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/security")


@router.post("/check-password-strength", response_model=schemas.PasswordStrengthResponse)
async def check_password_strength(request: schemas.PasswordStrengthRequest) -> schemas.PasswordStrengthResponse:
    return service.check_password_strength(request.password)


@router.get("/audit-logs")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    user_id: int | None = Query(default=None),
    action: str | None = Query(default=None, max_length=100),
    entity_type: str | None = Query(default=None, max_length=100),
    entity_id: str | None = Query(default=None, max_length=100),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _: dict = Depends(auth_dependencies.require_admin),
) -> dict:
    return await service.audit_logs(
        page=page,
        limit=limit,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/login-history")
async def login_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.login_history(current_user, page=page, limit=limit)


@router.get("/account-lockout/{user_id}", response_model=schemas.AccountLockoutResponse)
async def account_lockout_status(
    user_id: int,
    _: dict = Depends(auth_dependencies.require_admin),
) -> schemas.AccountLockoutResponse:
    return await service.account_lockout_status(user_id)


@router.post("/account-lockout/{user_id}")
async def set_account_lock(
    user_id: int,
    payload: schemas.AccountLockRequest,
    request: Request,
    current_user: dict = Depends(auth_dependencies.require_admin),
) -> dict:
    return await service.set_account_lock(
        user_id,
        locked=payload.locked,
        actor=current_user,
        request=request,
    )
