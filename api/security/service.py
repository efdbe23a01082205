"""
Security business logic.

The `log_*` helpers are called from other features (auth, integrations, ...).
They never raise: a failed bookkeeping write is logged and the request goes on.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from fastapi import HTTPException, Request, status

from core.config import env_int
from core.pagination import offset_for, pagination_block

from . import repository, schemas

LOGIN_FAILED = "LOGIN_FAILED"
ACCOUNT_LOCKOUT = "ACCOUNT_LOCKOUT"

LOCKOUT_WINDOW_MIN = 30
LOCKOUT_THRESHOLD = 5
MIN_PASSWORD_LENGTH = 12

logger = logging.getLogger(__name__)


def login_max_failed_attempts() -> int:
    return env_int("LOGIN_MAX_FAILED_ATTEMPTS", 10)


def client_ip(request: Request | None) -> str:
    if request is None:
        return "unknown"
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def user_agent(request: Request | None) -> str | None:
    if request is None:
        return None
    return request.headers.get("user-agent")


def check_password_strength(password: str) -> schemas.PasswordStrengthResponse:
    rules = (
        (lambda p: len(p) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"),
        (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain at least one uppercase letter"),
        (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain at least one lowercase letter"),
        (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain at least one number"),
        (lambda p: re.search(r"[^A-Za-z0-9]", p) is not None, "Password must contain at least one special character"),
    )
    for check, message in rules:
        if not check(password):
            return schemas.PasswordStrengthResponse(valid=False, message=message)
    return schemas.PasswordStrengthResponse(valid=True)


async def log_event(
    *,
    user_id: int | None,
    action: str,
    entity_type: str | None = None,
    entity_id: Any = None,
    metadata: dict[str, Any] | None = None,
    request: Request | None = None,
) -> None:
    try:
        await repository.insert_audit_log(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            metadata=metadata or {},
            ip_address=client_ip(request),
            user_agent=user_agent(request),
        )
    except Exception:
        logger.exception("audit_log_failed action=%s user_id=%s", action, user_id)


async def log_security_event(
    event_type: str,
    *,
    user_id: int | None = None,
    metadata: dict[str, Any] | None = None,
    request: Request | None = None,
) -> None:
    try:
        await repository.insert_security_event(
            event_type=event_type,
            user_id=user_id,
            ip_address=client_ip(request),
            user_agent=user_agent(request),
            metadata=metadata or {},
        )
    except Exception:
        logger.exception("security_event_failed type=%s user_id=%s", event_type, user_id)


async def log_login_attempt(email: str, *, success: bool, request: Request | None = None) -> None:
    try:
        await repository.insert_login_attempt(
            email=email,
            success=success,
            ip_address=client_ip(request),
            user_agent=user_agent(request),
        )
    except Exception:
        logger.exception("login_attempt_log_failed email=%s", email)


async def failed_login_count(ip_address: str, *, minutes: int = 15) -> int:
    return await repository.count_failed_logins_for_ip(ip_address, minutes=minutes)


async def ensure_ip_not_locked(request: Request | None) -> None:
    """
    Reject logins from an IP with too many recent failures (423).
    """
    ip = client_ip(request)
    failures = await failed_login_count(ip)
    if failures >= login_max_failed_attempts():
        logger.warning("login_blocked ip=%s failures=%s", ip, failures)
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="Too many failed login attempts. Try again later.",
        )


async def check_suspicious_activity(user_id: int, *, request: Request | None = None) -> bool:
    """
    True when the user has more than 5 failed logins in the last 30 minutes.

    A positive check also records an ACCOUNT_LOCKOUT security event.
    """
    recent = await repository.count_security_events(
        user_id,
        event_type=LOGIN_FAILED,
        minutes=LOCKOUT_WINDOW_MIN,
    )
    if recent <= LOCKOUT_THRESHOLD:
        return False
    await log_security_event(
        ACCOUNT_LOCKOUT,
        user_id=user_id,
        metadata={"reason": "Too many failed login attempts", "failed_logins": recent},
        request=request,
    )
    return True


async def account_lockout_status(user_id: int) -> schemas.AccountLockoutResponse:
    user = await repository.get_user_summary(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found.")
    recent = await repository.count_security_events(
        user_id,
        event_type=LOGIN_FAILED,
        minutes=LOCKOUT_WINDOW_MIN,
    )
    return schemas.AccountLockoutResponse(
        user_id=user_id,
        failed_logins=recent,
        window_minutes=LOCKOUT_WINDOW_MIN,
        locked=recent > LOCKOUT_THRESHOLD,
        is_active=bool(user["is_active"]),
    )


async def set_account_lock(
    user_id: int,
    *,
    locked: bool,
    actor: dict,
    request: Request | None = None,
) -> dict:
    if int(actor["id"]) == user_id and locked:
        raise HTTPException(status_code=400, detail="You cannot lock your own account.")

    row = await repository.set_user_active(user_id, is_active=not locked)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found.")

    await log_security_event(
        "ACCOUNT_LOCKED" if locked else "ACCOUNT_UNLOCKED",
        user_id=int(actor["id"]),
        metadata={"target_user_id": user_id, "action": "lock" if locked else "unlock"},
        request=request,
    )
    logger.info("account_lock_changed user_id=%s locked=%s actor_id=%s", user_id, locked, actor["id"])
    return {"ok": True, "user_id": user_id, "locked": locked}


async def audit_logs(
    *,
    page: int,
    limit: int,
    user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    rows, total = await repository.list_audit_logs(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset_for(page, limit),
    )
    return {"data": rows, "pagination": pagination_block(total=total, page=page, limit=limit)}


async def login_history(current_user: dict, *, page: int, limit: int) -> dict:
    rows, total = await repository.list_login_attempts(
        str(current_user["email"]),
        limit=limit,
        offset=offset_for(page, limit),
    )
    return {"data": rows, "pagination": pagination_block(total=total, page=page, limit=limit)}
