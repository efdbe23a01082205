"""
Pydantic schemas for contact endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

ContactStatus = Literal["active", "inactive", "lead", "customer", "influencer"]
VerificationStatus = Literal["unverified", "pending", "verified", "failed"]
SocialPlatform = Literal["facebook", "twitter", "instagram", "linkedin", "youtube", "tiktok", "other"]

CONTACT_STATUSES: tuple[str, ...] = ("active", "inactive", "lead", "customer", "influencer")
MAX_TAG_LENGTH = 30


class SocialMediaLink(BaseModel):
    platform: SocialPlatform
    url: str = Field(..., min_length=1, max_length=500)


def normalize_tags(tags: list[str] | None) -> list[str]:
    """
    Lowercase, trim and de-duplicate tags, keeping first-seen order.
    """
    seen: list[str] = []
    for tag in tags or []:
        cleaned = str(tag).strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class _ContactFields(BaseModel):
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)
    city: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    postal_code: str | None = Field(default=None, max_length=20)
    website: str | None = Field(default=None, max_length=300)
    social_media: list[SocialMediaLink] | None = None
    tags: list[str] | None = None
    notes: str | None = Field(default=None, max_length=1000)
    last_contacted: datetime | None = None
    next_follow_up: datetime | None = None

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        for tag in value:
            if len(str(tag).strip()) > MAX_TAG_LENGTH:
                raise ValueError(f"Each tag cannot be more than {MAX_TAG_LENGTH} characters")
        return normalize_tags(value)


class ContactCreateRequest(_ContactFields):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    country: str = Field(..., min_length=1, max_length=100)
    status: ContactStatus = "lead"
    is_favorite: bool = False


class ContactUpdateRequest(_ContactFields):
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None
    country: str | None = Field(default=None, min_length=1, max_length=100)
    status: ContactStatus | None = None
    is_favorite: bool | None = None


class VerifyContactRequest(BaseModel):
    status: Literal["pending", "verified", "failed"]


class ContactListResponse(BaseModel):
    contacts: list[dict]
    total: int
    results: int
    page: int
    limit: int


class ImportRowError(BaseModel):
    row: int
    error: str


class ImportResult(BaseModel):
    total_rows: int
    created: int
    skipped_duplicates: int
    failed: int
    errors: list[ImportRowError] = Field(default_factory=list)
