"""
Pydantic schemas for analytics endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field

ReportType = Literal["campaign-performance", "user-engagement"]
ReportFormat = Literal["json", "csv"]
ReportFrequency = Literal["daily", "weekly", "monthly"]


class ReportSchedule(BaseModel):
    frequency: ReportFrequency
    time_of_day: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    recipients: list[EmailStr] = Field(..., min_length=1, max_length=20)
    format: ReportFormat = "csv"


class ReportOptions(BaseModel):
    email_subject: str | None = Field(default=None, max_length=200)
    email_body: str | None = Field(default=None, max_length=5000)


class ScheduleReportRequest(BaseModel):
    report_type: ReportType
    schedule: ReportSchedule
    filters: dict[str, Any] = Field(default_factory=dict)
    options: ReportOptions = Field(default_factory=ReportOptions)
