"""
Pydantic schemas for notification endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

NotificationType = Literal["SYSTEM", "CAMPAIGN", "CONTACT", "SECURITY", "INTEGRATION", "AUTOMATION"]
NotificationChannel = Literal["IN_APP", "EMAIL", "PUSH", "SMS"]

NOTIFICATION_TYPES: tuple[str, ...] = ("SYSTEM", "CAMPAIGN", "CONTACT", "SECURITY", "INTEGRATION", "AUTOMATION")
NOTIFICATION_CHANNELS: tuple[str, ...] = ("IN_APP", "EMAIL", "PUSH", "SMS")


class MarkReadRequest(BaseModel):
    notification_ids: list[int] = Field(..., min_length=1, max_length=500)


class PreferenceUpdate(BaseModel):
    type: NotificationType
    channel: NotificationChannel
    enabled: bool


class PreferencesUpdateRequest(BaseModel):
    updates: list[PreferenceUpdate] = Field(..., min_length=1)


class SampleNotificationRequest(BaseModel):
    type: NotificationType = "SYSTEM"
    title: str = Field(default="Test Notification", min_length=1, max_length=200)
    message: str = Field(default="This is a test notification", min_length=1, max_length=2000)
    data: dict[str, Any] = Field(default_factory=lambda: {"test": True})
    channels: list[NotificationChannel] | None = None
