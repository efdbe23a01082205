from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
from fastapi import HTTPException

from auth import dependencies, repository, schemas, security, service
from security import service as security_service
from two_factor import service as two_factor_service


@pytest.fixture()
def quiet_security(monkeypatch):
    """
    Stub every security bookkeeping call made during login.
    """
    monkeypatch.setattr(security_service, "ensure_ip_not_locked", AsyncMock(return_value=None))
    monkeypatch.setattr(security_service, "log_login_attempt", AsyncMock(return_value=None))
    monkeypatch.setattr(security_service, "log_security_event", AsyncMock(return_value=None))
    monkeypatch.setattr(security_service, "log_event", AsyncMock(return_value=None))
    check = AsyncMock(return_value=False)
    monkeypatch.setattr(security_service, "check_suspicious_activity", check)
    return check


@pytest.fixture()
def stored_user(user: dict) -> dict:
    return {**user, "password_hash": security.hash_password("Correct-Horse-1")}


def _stub_token_storage(monkeypatch) -> AsyncMock:
    insert = AsyncMock(return_value={"id": 10})
    monkeypatch.setattr(repository, "insert_refresh_token", insert)
    monkeypatch.setattr(repository, "set_refresh_token_replacement", AsyncMock(return_value=None))
    return insert


def test_password_hash_round_trip() -> None:
    hashed = security.hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert security.verify_password("s3cret-pass", hashed)
    assert not security.verify_password("wrong", hashed)
    assert not security.verify_password("s3cret-pass", "not-a-bcrypt-hash")


def test_access_token_carries_subject_and_role() -> None:
    token = security.build_access_token(user_id=7, email="a@example.com", role="admin")
    payload = security.decode_access_token(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "admin"
    assert payload["type"] == "access"


def test_decode_rejects_non_access_tokens() -> None:
    token = jwt.encode({"sub": "1", "type": "refresh"}, security.jwt_secret(), algorithm="HS256")
    with pytest.raises(security.AuthSecurityError):
        security.decode_access_token(token)


def test_decode_rejects_expired_tokens(monkeypatch) -> None:
    monkeypatch.setattr(security, "now_epoch_s", lambda: 1_000)
    token = security.build_access_token(user_id=1, email="a@example.com")
    with pytest.raises(security.AuthSecurityError, match="expired"):
        security.decode_access_token(token)


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer "])
def test_bearer_extraction_rejects_malformed_headers(header) -> None:
    with pytest.raises(HTTPException) as exc_info:
        dependencies._extract_bearer_token(header)
    assert exc_info.value.status_code == 401


async def test_login_issues_token_pair(monkeypatch, quiet_security, stored_user: dict) -> None:
    monkeypatch.setattr(repository, "get_user_by_email", AsyncMock(return_value=stored_user))
    insert = _stub_token_storage(monkeypatch)

    result = await service.login(schemas.LoginRequest(email="Manager@NovaSound.example", password="Correct-Horse-1"))

    assert result.user.email == stored_user["email"]
    assert result.tokens.token_type == "bearer"
    assert security.decode_access_token(result.tokens.access_token)["sub"] == "1"
    assert insert.await_args.kwargs["token_hash"] == security.hash_refresh_token(result.tokens.refresh_token)


async def test_login_with_bad_password_records_failure(monkeypatch, quiet_security, stored_user: dict) -> None:
    monkeypatch.setattr(repository, "get_user_by_email", AsyncMock(return_value=stored_user))

    with pytest.raises(HTTPException) as exc_info:
        await service.login(schemas.LoginRequest(email=stored_user["email"], password="nope"))

    assert exc_info.value.status_code == 401
    quiet_security.assert_awaited_once()
    security_service.log_login_attempt.assert_awaited_once()
    assert security_service.log_login_attempt.await_args.kwargs["success"] is False


async def test_login_rejects_inactive_user(monkeypatch, quiet_security, stored_user: dict) -> None:
    monkeypatch.setattr(repository, "get_user_by_email", AsyncMock(return_value={**stored_user, "is_active": False}))

    with pytest.raises(HTTPException) as exc_info:
        await service.login(schemas.LoginRequest(email=stored_user["email"], password="Correct-Horse-1"))
    assert exc_info.value.status_code == 403


async def test_login_requires_second_factor_when_enabled(monkeypatch, quiet_security, stored_user: dict) -> None:
    row = {**stored_user, "two_factor_enabled": True, "two_factor_secret": "JBSWY3DPEHPK3PXP"}
    monkeypatch.setattr(repository, "get_user_by_email", AsyncMock(return_value=row))

    with pytest.raises(HTTPException) as exc_info:
        await service.login(schemas.LoginRequest(email=row["email"], password="Correct-Horse-1"))
    assert exc_info.value.detail == "two_factor_required"

    monkeypatch.setattr(two_factor_service, "verify_login_code", AsyncMock(return_value=False))
    with pytest.raises(HTTPException) as exc_info:
        await service.login(schemas.LoginRequest(email=row["email"], password="Correct-Horse-1", totp_code="000000"))
    assert exc_info.value.detail == "Invalid two-factor code."


async def test_refresh_rejects_expired_token_and_revokes_it(monkeypatch) -> None:
    expired = {
        "id": 5,
        "user_id": 1,
        "revoked_at": None,
        "expires_at": datetime.now(timezone.utc) - timedelta(minutes=1),
    }
    monkeypatch.setattr(repository, "get_refresh_token_by_hash", AsyncMock(return_value=expired))
    revoke = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "revoke_refresh_token_by_id", revoke)

    with pytest.raises(HTTPException) as exc_info:
        await service.refresh_tokens(schemas.RefreshRequest(refresh_token="x" * 40))

    assert exc_info.value.status_code == 401
    revoke.assert_awaited_once_with(5)


async def test_refresh_rotates_token(monkeypatch, user: dict) -> None:
    current = {
        "id": 5,
        "user_id": 1,
        "revoked_at": None,
        "expires_at": datetime.now(timezone.utc) + timedelta(days=1),
    }
    monkeypatch.setattr(repository, "get_refresh_token_by_hash", AsyncMock(return_value=current))
    monkeypatch.setattr(repository, "get_user_by_id", AsyncMock(return_value=user))
    monkeypatch.setattr(repository, "consume_refresh_token", AsyncMock(return_value=True))
    _stub_token_storage(monkeypatch)

    tokens = await service.refresh_tokens(schemas.RefreshRequest(refresh_token="x" * 40))

    assert tokens.refresh_token != "x" * 40
    repository.set_refresh_token_replacement.assert_awaited_once_with(old_token_id=5, new_token_id=10)


def test_me_endpoint_returns_current_user(client) -> None:
    response = client.get("/auth/me")
    assert response.status_code == 200
    assert response.json()["email"] == "manager@novasound.example"


def test_protected_endpoint_requires_token(anonymous_client) -> None:
    response = anonymous_client.get("/contacts")
    assert response.status_code == 401
