"""
Pydantic schemas for integration endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

IntegrationType = Literal["EMAIL_PROVIDER", "SOCIAL_MEDIA", "PAYMENT_GATEWAY", "ANALYTICS", "OTHER"]


def _check_webhook_url(config: dict[str, Any] | None) -> dict[str, Any] | None:
    if config is None:
        return None
    url = config.get("webhook_url")
    if url is not None:
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
    return config


class IntegrationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: IntegrationType
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("config")
    @classmethod
    def _validate_config(cls, v: dict[str, Any]) -> dict[str, Any]:
        return _check_webhook_url(v) or {}


class IntegrationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    config: dict[str, Any] | None = None
    is_active: bool | None = None

    @field_validator("config")
    @classmethod
    def _validate_config(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_webhook_url(v)


class WebhookRequest(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict)


class ConnectivityResult(BaseModel):
    success: bool
    message: str
