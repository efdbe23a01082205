"""
Auth business logic.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Request, status

from security import service as security_service
from two_factor import service as two_factor_service

from . import repository, schemas, security

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_user_response(user_row: dict) -> schemas.UserResponse:
    return schemas.UserResponse(
        id=int(user_row["id"]),
        name=str(user_row.get("name") or ""),
        email=str(user_row["email"]),
        role=str(user_row.get("role") or "user"),
        is_active=bool(user_row["is_active"]),
        two_factor_enabled=bool(user_row.get("two_factor_enabled", False)),
        created_at=user_row["created_at"],
    )


async def _issue_token_pair(
    *,
    user_row: dict,
    request: Request | None = None,
    replaced_token_id: int | None = None,
) -> schemas.TokenPairResponse:
    user_id = int(user_row["id"])

    access_token = security.build_access_token(
        user_id=user_id,
        email=str(user_row["email"]),
        role=str(user_row.get("role") or "user"),
    )
    raw_refresh_token = security.build_refresh_token()
    refresh_row = await repository.insert_refresh_token(
        user_id=user_id,
        token_hash=security.hash_refresh_token(raw_refresh_token),
        expires_at=_utc_now() + timedelta(days=security.refresh_token_expire_days()),
        user_agent=security_service.user_agent(request),
        ip_address=security_service.client_ip(request),
    )

    if replaced_token_id is not None:
        await repository.set_refresh_token_replacement(
            old_token_id=replaced_token_id,
            new_token_id=int(refresh_row["id"]),
        )

    return schemas.TokenPairResponse(
        access_token=access_token,
        refresh_token=raw_refresh_token,
    )


async def register(
    payload: schemas.RegisterRequest,
    *,
    request: Request | None = None,
) -> schemas.AuthResponse:
    existing = await repository.get_user_by_email(payload.email)
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email is already registered.",
        )

    password_hash = security.hash_password(payload.password)
    user_row = await repository.create_user(
        name=payload.name,
        email=payload.email,
        password_hash=password_hash,
    )
    user_id = int(user_row["id"])
    logger.info("user_registered user_id=%s role=%s", user_id, user_row["role"])
    await security_service.log_event(user_id=user_id, action="USER_REGISTERED", entity_type="USER", entity_id=user_id, request=request)

    tokens = await _issue_token_pair(user_row=user_row, request=request)
    return schemas.AuthResponse(user=_to_user_response(user_row), tokens=tokens)


async def _record_failed_login(
    email: str,
    *,
    user_id: int | None,
    reason: str,
    request: Request | None,
) -> None:
    await security_service.log_login_attempt(email, success=False, request=request)
    await security_service.log_security_event(
        security_service.LOGIN_FAILED,
        user_id=user_id,
        metadata={"email": email, "reason": reason},
        request=request,
    )
    if user_id is not None:
        await security_service.check_suspicious_activity(user_id, request=request)


async def login(
    payload: schemas.LoginRequest,
    *,
    request: Request | None = None,
) -> schemas.AuthResponse:
    email = repository.normalize_email(payload.email)
    await security_service.ensure_ip_not_locked(request)

    user_row = await repository.get_user_by_email(email)
    if user_row is None:
        await _record_failed_login(email, user_id=None, reason="unknown_email", request=request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    user_id = int(user_row["id"])
    if not security.verify_password(payload.password, str(user_row.get("password_hash") or "")):
        await _record_failed_login(email, user_id=user_id, reason="bad_password", request=request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    if not bool(user_row.get("is_active", False)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive.",
        )

    if user_row.get("two_factor_enabled"):
        code = (payload.totp_code or "").strip()
        if not code:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="two_factor_required",
            )
        if not await two_factor_service.verify_login_code(user_row, code):
            await _record_failed_login(email, user_id=user_id, reason="bad_two_factor_code", request=request)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid two-factor code.",
            )

    await security_service.log_login_attempt(email, success=True, request=request)
    await security_service.log_event(user_id=user_id, action="LOGIN", entity_type="USER", entity_id=user_id, request=request)

    tokens = await _issue_token_pair(user_row=user_row, request=request)
    return schemas.AuthResponse(user=_to_user_response(user_row), tokens=tokens)


async def refresh_tokens(
    payload: schemas.RefreshRequest,
    *,
    request: Request | None = None,
) -> schemas.TokenPairResponse:
    incoming_refresh = (payload.refresh_token or "").strip()
    if not incoming_refresh:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="refresh_token is required.",
        )

    old_token_row = await repository.get_refresh_token_by_hash(security.hash_refresh_token(incoming_refresh))
    if old_token_row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token.",
        )

    old_token_id = int(old_token_row["id"])
    if old_token_row.get("revoked_at") is not None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token is revoked.",
        )

    expires_at = old_token_row.get("expires_at")
    if not isinstance(expires_at, datetime) or expires_at <= _utc_now():
        await repository.revoke_refresh_token_by_id(old_token_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token is expired.",
        )

    user_row = await repository.get_user_by_id(int(old_token_row["user_id"]))
    if user_row is None or not bool(user_row.get("is_active", False)):
        await repository.revoke_refresh_token_by_id(old_token_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token owner.",
        )

    if not await repository.consume_refresh_token(old_token_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token is revoked.",
        )

    return await _issue_token_pair(
        user_row=user_row,
        request=request,
        replaced_token_id=old_token_id,
    )


async def logout(
    payload: schemas.LogoutRequest,
    *,
    current_user_id: int,
) -> dict:
    refresh_token = (payload.refresh_token or "").strip()
    if refresh_token:
        revoked = await repository.revoke_refresh_token(
            token_hash=security.hash_refresh_token(refresh_token),
            user_id=current_user_id,
        )
        return {"ok": True, "revoked": 1 if revoked else 0}

    revoked_count = await repository.revoke_all_refresh_tokens_for_user(current_user_id)
    logger.info("logout_all user_id=%s revoked=%s", current_user_id, revoked_count)
    return {"ok": True, "revoked": revoked_count}


async def get_user_from_access_token(access_token: str) -> dict:
    try:
        payload = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject.isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token subject.",
        )

    user_row = await repository.get_user_by_id(int(subject))
    if user_row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found.",
        )
    if not bool(user_row.get("is_active", False)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive.",
        )
    return user_row


def me(user_row: dict) -> schemas.UserResponse:
    return _to_user_response(user_row)
