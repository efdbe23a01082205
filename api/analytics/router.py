"""
FastAPI router for analytics endpoints.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status

from auth import dependencies as auth_dependencies
from campaigns.schemas import CampaignStatus

from . import schemas, service

router = APIRouter(prefix="/analytics")


@router.get("/campaign-performance")
async def campaign_performance(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    campaign_id: int | None = Query(default=None, ge=1),
    status_filter: list[CampaignStatus] | None = Query(default=None, alias="status"),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.campaign_performance(
        current_user,
        start_date=start_date,
        end_date=end_date,
        campaign_id=campaign_id,
        statuses=list(status_filter) if status_filter else None,
    )


@router.get("/campaigns/{campaign_id}")
async def campaign_analytics(
    campaign_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.campaign_analytics(current_user, campaign_id)


@router.get("/user-engagement")
async def user_engagement(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.user_engagement(current_user, start_date=start_date, end_date=end_date)


@router.get("/dashboard")
async def dashboard(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return await service.dashboard(current_user)


@router.get("/reports/generate", response_model=None)
async def generate_report(
    report_type: schemas.ReportType = Query(...),
    format: schemas.ReportFormat = Query("json"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    campaign_id: int | None = Query(default=None, ge=1),
    status_filter: list[CampaignStatus] | None = Query(default=None, alias="status"),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict | Response:
    """
    Build a report as JSON, or as a CSV download when `format=csv`.
    """
    return await service.generate_report(
        current_user,
        report_type=report_type,
        fmt=format,
        start_date=start_date,
        end_date=end_date,
        campaign_id=campaign_id,
        statuses=list(status_filter) if status_filter else None,
    )


@router.post("/reports/schedule", status_code=status.HTTP_201_CREATED)
async def schedule_report(
    payload: schemas.ScheduleReportRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"report": await service.schedule_report(current_user, payload)}


@router.get("/reports/scheduled")
async def list_scheduled_reports(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    rows = await service.list_scheduled_reports(current_user)
    return {"reports": rows, "total": len(rows)}


@router.delete("/reports/scheduled/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scheduled_report(
    report_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_scheduled_report(current_user, report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
