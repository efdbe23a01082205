"""
Security API schemas.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PasswordStrengthRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=256)


class PasswordStrengthResponse(BaseModel):
    valid: bool
    message: str | None = None


class AccountLockoutResponse(BaseModel):
    user_id: int
    failed_logins: int
    window_minutes: int
    locked: bool
    is_active: bool


class AccountLockRequest(BaseModel):
    locked: bool
