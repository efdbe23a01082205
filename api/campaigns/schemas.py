"""
Pydantic schemas for campaign endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

CampaignStatus = Literal["draft", "scheduled", "sending", "sent", "paused", "cancelled"]
RecipientStatus = Literal["pending", "sent", "delivered", "opened", "clicked", "bounced", "failed"]
RecipientEvent = Literal["delivered", "opened", "clicked", "bounced"]
ContactStatus = Literal["active", "inactive", "lead", "customer", "influencer"]


class CampaignTemplate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)
    variables: list[str] = Field(default_factory=list)


class RecipientFilter(BaseModel):
    tags: list[str] = Field(default_factory=list)
    statuses: list[ContactStatus] = Field(default_factory=list)
    countries: list[str] = Field(default_factory=list)


class CampaignCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    subject: str = Field(..., min_length=1, max_length=200)
    from_email: EmailStr
    from_name: str = Field(..., min_length=1, max_length=100)
    reply_to: EmailStr | None = None
    template: CampaignTemplate
    scheduled_at: datetime | None = None
    recipient_filter: RecipientFilter = Field(default_factory=RecipientFilter)


class CampaignUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    subject: str | None = Field(default=None, min_length=1, max_length=200)
    from_email: EmailStr | None = None
    from_name: str | None = Field(default=None, min_length=1, max_length=100)
    reply_to: EmailStr | None = None
    template: CampaignTemplate | None = None
    scheduled_at: datetime | None = None
    recipient_filter: RecipientFilter | None = None
    status: Literal["draft", "scheduled", "paused", "cancelled"] | None = None


class StatusUpdateRequest(BaseModel):
    status: Literal["draft", "scheduled", "paused", "cancelled"]
    scheduled_at: datetime | None = None


class SendTestRequest(BaseModel):
    email: EmailStr


class RecipientEventRequest(BaseModel):
    event: RecipientEvent


class CampaignStats(BaseModel):
    total: int = 0
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    bounced: int = 0
    failed: int = 0
    open_rate: int = 0
    click_rate: int = 0
