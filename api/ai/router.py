"""
FastAPI router for AI content endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/ai")


@router.post("/generate")
async def generate_content(
    payload: schemas.GenerateContentRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.generate_content(current_user, payload)


@router.post("/optimize")
async def optimize_content(
    payload: schemas.OptimizeContentRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.optimize_content(current_user, payload)


@router.post("/variations")
async def generate_variations(
    payload: schemas.VariationsRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.generate_variations(current_user, payload)


@router.post("/hashtags")
async def generate_hashtags(
    payload: schemas.HashtagsRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.generate_hashtags(current_user, payload)


@router.post("/video-script")
async def generate_video_script(
    payload: schemas.VideoScriptRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.generate_video_script(current_user, payload)


@router.post("/analyze-content")
async def analyze_content(
    payload: schemas.AnalyzeContentRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.analyze_content(current_user, payload)


@router.get("/optimal-send-time")
async def optimal_send_time(
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.optimal_send_time(current_user)


@router.post("/subject-lines")
async def subject_lines(
    payload: schemas.SubjectLinesRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.subject_lines(current_user, payload)


@router.post("/personalize")
async def personalize_content(
    payload: schemas.PersonalizeRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.personalize_content(current_user, payload)
