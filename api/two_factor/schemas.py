"""
Two-factor API schemas.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=6, max_length=12)


class BackupCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=32)


class GenerateSecretResponse(BaseModel):
    secret: str
    otpauth_url: str


class VerifyResponse(BaseModel):
    verified: bool
    enabled: bool
    backup_codes: list[str] = Field(default_factory=list)


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]
