"""
Two-factor API endpoints (mounted under /auth/2fa).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/auth/2fa")


@router.post("/generate", response_model=schemas.GenerateSecretResponse)
async def generate_secret(
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.GenerateSecretResponse:
    return await service.generate_secret(current_user, request=request)


@router.post("/verify", response_model=schemas.VerifyResponse)
async def verify_token(
    payload: schemas.TokenRequest,
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.VerifyResponse:
    return await service.verify_and_enable(current_user, payload.token, request=request)


@router.post("/disable")
async def disable(
    payload: schemas.TokenRequest,
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.disable(current_user, payload.token, request=request)


@router.post("/backup-codes/generate", response_model=schemas.BackupCodesResponse)
async def generate_backup_codes(
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.BackupCodesResponse:
    return await service.regenerate_backup_codes(current_user, request=request)


@router.post("/backup-codes/verify")
async def verify_backup_code(
    payload: schemas.BackupCodeRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.verify_backup_code(current_user, payload.code)
