"""
Two-factor business logic.

Setup is two-step: `generate_secret` stores a pending secret, and the first
successful `verify_and_enable` turns 2FA on and hands out backup codes. Backup
codes are only ever returned in plain text at creation time.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from security import service as security_service

from . import repository, schemas, totp

logger = logging.getLogger(__name__)


async def _load(user_id: int) -> dict:
    row = await repository.get_user_two_factor(user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return row


async def _issue_backup_codes(user_id: int, *, enable: bool) -> list[str]:
    codes = totp.generate_backup_codes()
    hashes = [totp.hash_backup_code(code) for code in codes]
    if enable:
        await repository.enable_with_backup_codes(user_id, hashes)
    else:
        await repository.replace_backup_codes(user_id, hashes)
    return codes


async def generate_secret(current_user: dict, *, request: Request | None = None) -> schemas.GenerateSecretResponse:
    user_id = int(current_user["id"])
    row = await _load(user_id)
    if row["two_factor_enabled"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Two-factor authentication is already enabled. Disable it first.",
        )

    secret = totp.generate_secret()
    await repository.set_pending_secret(user_id, secret)
    await security_service.log_event(user_id=user_id, action="2FA_SETUP_STARTED", entity_type="USER", entity_id=user_id, request=request)
    return schemas.GenerateSecretResponse(
        secret=secret,
        otpauth_url=totp.otpauth_url(secret, str(row["email"])),
    )


async def verify_and_enable(
    current_user: dict,
    token: str,
    *,
    request: Request | None = None,
) -> schemas.VerifyResponse:
    user_id = int(current_user["id"])
    row = await _load(user_id)
    secret = row.get("two_factor_secret")
    if not secret:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Two-factor authentication is not set up.")
    if not totp.verify(secret, token):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token.")

    if row["two_factor_enabled"]:
        return schemas.VerifyResponse(verified=True, enabled=True)

    codes = await _issue_backup_codes(user_id, enable=True)
    await security_service.log_security_event("TWO_FACTOR_ENABLED", user_id=user_id, request=request)
    logger.info("two_factor_enabled user_id=%s", user_id)
    return schemas.VerifyResponse(verified=True, enabled=True, backup_codes=codes)


async def disable(current_user: dict, token: str, *, request: Request | None = None) -> dict:
    user_id = int(current_user["id"])
    row = await _load(user_id)
    if not row["two_factor_enabled"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Two-factor authentication is not enabled.")
    if not totp.verify(str(row.get("two_factor_secret") or ""), token):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token.")

    await repository.disable(user_id)
    await security_service.log_security_event("TWO_FACTOR_DISABLED", user_id=user_id, request=request)
    logger.info("two_factor_disabled user_id=%s", user_id)
    return {"ok": True, "enabled": False}


async def regenerate_backup_codes(current_user: dict, *, request: Request | None = None) -> schemas.BackupCodesResponse:
    user_id = int(current_user["id"])
    row = await _load(user_id)
    if not row["two_factor_enabled"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Two-factor authentication is not enabled.")

    codes = await _issue_backup_codes(user_id, enable=False)
    await security_service.log_event(user_id=user_id, action="2FA_BACKUP_CODES_REGENERATED", entity_type="USER", entity_id=user_id, request=request)
    return schemas.BackupCodesResponse(backup_codes=codes)


async def verify_backup_code(current_user: dict, code: str) -> dict:
    user_id = int(current_user["id"])
    if not await repository.consume_backup_code(user_id, totp.hash_backup_code(code)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or already used backup code.")
    remaining = await repository.count_unused_backup_codes(user_id)
    return {"valid": True, "remaining": remaining}


async def verify_login_code(user_row: dict, code: str) -> bool:
    """
    Second login factor: a current TOTP code, or an unused backup code (consumed).
    """
    secret = str(user_row.get("two_factor_secret") or "")
    if secret and totp.verify(secret, code):
        return True
    return await repository.consume_backup_code(int(user_row["id"]), totp.hash_backup_code(code))
