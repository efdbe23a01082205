from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from security import repository, service


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.5", 5000)) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw_headers, "client": client})


@pytest.mark.parametrize(
    ("password", "valid", "fragment"),
    [
        ("Short1!", False, "at least 12"),
        ("alllowercase123!", False, "uppercase"),
        ("ALLUPPERCASE123!", False, "lowercase"),
        ("NoDigitsHere!!", False, "number"),
        ("NoSpecials1234", False, "special"),
        ("Str0ng&Secure-pass", True, None),
    ],
)
def test_password_strength_rules(password: str, valid: bool, fragment: str | None) -> None:
    result = service.check_password_strength(password)
    assert result.valid is valid
    if fragment:
        assert fragment in (result.message or "")
    else:
        assert result.message is None


def test_client_ip_prefers_forwarded_header() -> None:
    assert service.client_ip(_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})) == "203.0.113.9"
    assert service.client_ip(_request()) == "10.0.0.5"
    assert service.client_ip(_request(client=None)) == "unknown"
    assert service.client_ip(None) == "unknown"


async def test_log_helpers_swallow_storage_errors(monkeypatch) -> None:
    monkeypatch.setattr(repository, "insert_audit_log", AsyncMock(side_effect=RuntimeError("db down")))
    monkeypatch.setattr(repository, "insert_security_event", AsyncMock(side_effect=RuntimeError("db down")))

    await service.log_event(user_id=1, action="LOGIN")
    await service.log_security_event(service.LOGIN_FAILED, user_id=1)


async def test_ip_lockout_after_too_many_failures(monkeypatch) -> None:
    monkeypatch.setenv("LOGIN_MAX_FAILED_ATTEMPTS", "3")
    monkeypatch.setattr(repository, "count_failed_logins_for_ip", AsyncMock(return_value=3))

    with pytest.raises(HTTPException) as exc_info:
        await service.ensure_ip_not_locked(_request())
    assert exc_info.value.status_code == 423


async def test_suspicious_activity_threshold(monkeypatch) -> None:
    insert = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "insert_security_event", insert)

    monkeypatch.setattr(repository, "count_security_events", AsyncMock(return_value=5))
    assert await service.check_suspicious_activity(1) is False
    insert.assert_not_awaited()

    monkeypatch.setattr(repository, "count_security_events", AsyncMock(return_value=6))
    assert await service.check_suspicious_activity(1) is True
    assert insert.await_args.kwargs["event_type"] == service.ACCOUNT_LOCKOUT


async def test_account_lockout_status(monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_user_summary", AsyncMock(return_value={"id": 4, "is_active": True}))
    monkeypatch.setattr(repository, "count_security_events", AsyncMock(return_value=7))

    status = await service.account_lockout_status(4)
    assert status.locked is True
    assert status.failed_logins == 7
    assert status.window_minutes == 30


async def test_admin_cannot_lock_themselves(admin: dict) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await service.set_account_lock(admin["id"], locked=True, actor=admin)
    assert exc_info.value.status_code == 400


def test_lock_endpoint_requires_admin(client) -> None:
    response = client.post("/security/account-lockout/4", json={"locked": True})
    assert response.status_code == 403


def test_lock_endpoint_deactivates_user(admin_client, monkeypatch) -> None:
    set_active = AsyncMock(return_value={"id": 4, "is_active": False})
    monkeypatch.setattr(repository, "set_user_active", set_active)
    monkeypatch.setattr(repository, "insert_security_event", AsyncMock(return_value=None))

    response = admin_client.post("/security/account-lockout/4", json={"locked": True})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "user_id": 4, "locked": True}
    set_active.assert_awaited_once_with(4, is_active=False)


def test_audit_logs_paginates(admin_client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "list_audit_logs", AsyncMock(return_value=([{"id": 1}], 41)))

    response = admin_client.get("/security/audit-logs", params={"page": 2, "limit": 20})

    body = response.json()
    assert body["pagination"] == {"total": 41, "page": 2, "limit": 20, "total_pages": 3}
    assert repository.list_audit_logs.await_args.kwargs["offset"] == 20
