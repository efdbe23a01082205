"""
Pydantic schemas for email template endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TemplateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)
    # Derived from the {{placeholders}} in subject/body when omitted.
    variables: list[str] | None = None
    preview_text: str | None = Field(default=None, max_length=200)
    is_default: bool = False
    category: str | None = Field(default=None, max_length=50)
    thumbnail: str | None = Field(default=None, max_length=500)


class TemplateUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    subject: str | None = Field(default=None, min_length=1, max_length=200)
    body: str | None = Field(default=None, min_length=1)
    variables: list[str] | None = None
    preview_text: str | None = Field(default=None, max_length=200)
    is_default: bool | None = None
    category: str | None = Field(default=None, max_length=50)
    thumbnail: str | None = Field(default=None, max_length=500)


class DuplicateTemplateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class RenderTemplateRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)


class RenderTemplateResponse(BaseModel):
    subject: str
    body: str
    preview_text: str | None = None
    missing_variables: list[str] = Field(default_factory=list)
