from __future__ import annotations

import base64
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from security import service as security_service
from two_factor import repository, service, totp

# RFC 6238 appendix B (SHA1 seed), truncated to six digits.
RFC_SECRET = base64.b32encode(b"12345678901234567890").decode("ascii")


@pytest.mark.parametrize(
    ("at", "code"),
    [(59, "287082"), (1111111109, "081804"), (1234567890, "005924"), (2000000000, "279037")],
)
def test_totp_matches_reference_vectors(at: int, code: str) -> None:
    assert totp.code_for(RFC_SECRET, at=at) == code


def test_totp_verify_accepts_adjacent_window_only() -> None:
    secret = totp.generate_secret()
    now = 1_700_000_000
    assert totp.verify(secret, totp.code_for(secret, at=now - 30), at=now)
    assert totp.verify(secret, totp.code_for(secret, at=now + 30), at=now)
    assert not totp.verify(secret, totp.code_for(secret, at=now - 90), at=now)
    assert not totp.verify(secret, "12345", at=now)


def test_backup_codes_are_unique_and_normalized() -> None:
    codes = totp.generate_backup_codes()
    assert len(codes) == totp.BACKUP_CODE_COUNT == len(set(codes))
    assert all(len(code) == totp.BACKUP_CODE_LENGTH for code in codes)
    assert totp.hash_backup_code("ab-cd 12") == totp.hash_backup_code("ABCD12")


def test_otpauth_url_contains_issuer_and_secret() -> None:
    url = totp.otpauth_url("ABCDEF", "artist@example.com")
    assert url.startswith("otpauth://totp/MusicPromoCRM%3Aartist%40example.com?")
    assert "secret=ABCDEF" in url
    assert "issuer=MusicPromoCRM" in url


@pytest.fixture(autouse=True)
def quiet_security(monkeypatch) -> None:
    monkeypatch.setattr(security_service, "log_event", AsyncMock(return_value=None))
    monkeypatch.setattr(security_service, "log_security_event", AsyncMock(return_value=None))


async def test_generate_secret_refuses_when_enabled(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(
        repository,
        "get_user_two_factor",
        AsyncMock(return_value={"email": user["email"], "two_factor_enabled": True, "two_factor_secret": "X"}),
    )
    with pytest.raises(HTTPException) as exc_info:
        await service.generate_secret(user)
    assert exc_info.value.status_code == 400


async def test_verify_enables_and_returns_backup_codes(monkeypatch, user: dict) -> None:
    secret = totp.generate_secret()
    monkeypatch.setattr(
        repository,
        "get_user_two_factor",
        AsyncMock(return_value={"email": user["email"], "two_factor_enabled": False, "two_factor_secret": secret}),
    )
    enable = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "enable_with_backup_codes", enable)

    result = await service.verify_and_enable(user, totp.code_for(secret))

    assert result.enabled is True
    assert len(result.backup_codes) == totp.BACKUP_CODE_COUNT
    stored_hashes = enable.await_args.args[1]
    assert stored_hashes == [totp.hash_backup_code(code) for code in result.backup_codes]


async def test_verify_rejects_wrong_code(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(
        repository,
        "get_user_two_factor",
        AsyncMock(return_value={"email": user["email"], "two_factor_enabled": False, "two_factor_secret": RFC_SECRET}),
    )
    with pytest.raises(HTTPException):
        await service.verify_and_enable(user, "12ab")


async def test_login_code_falls_back_to_backup_code(monkeypatch, user: dict) -> None:
    consume = AsyncMock(return_value=True)
    monkeypatch.setattr(repository, "consume_backup_code", consume)

    row = {**user, "two_factor_secret": RFC_SECRET}
    assert await service.verify_login_code(row, "abcd-efgh-12") is True
    consume.assert_awaited_once_with(1, totp.hash_backup_code("ABCDEFGH12"))


async def test_backup_code_verification_reports_remaining(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "consume_backup_code", AsyncMock(return_value=True))
    monkeypatch.setattr(repository, "count_unused_backup_codes", AsyncMock(return_value=9))
    assert await service.verify_backup_code(user, "ABCDEFGH12") == {"valid": True, "remaining": 9}

    monkeypatch.setattr(repository, "consume_backup_code", AsyncMock(return_value=False))
    with pytest.raises(HTTPException):
        await service.verify_backup_code(user, "ABCDEFGH12")
