"""
FastAPI router for email template endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from auth import dependencies as auth_dependencies

from . import schemas, service

router = APIRouter(prefix="/email-templates")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: schemas.TemplateCreateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"template": await service.create_template(current_user, payload)}


@router.get("")
async def list_templates(
    category: str | None = Query(default=None, max_length=50),
    is_default: bool | None = Query(default=None),
    sort: str = Query("-updated_at", max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_templates(
        current_user,
        category=category,
        is_default=is_default,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/categories")
async def list_categories(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return {"categories": await service.list_categories(current_user)}


@router.get("/default")
async def get_default_template(
    category: str | None = Query(default=None, max_length=50),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"template": await service.get_default_template(current_user, category)}


@router.get("/{template_id}")
async def get_template(
    template_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"template": await service.get_template(current_user, template_id)}


@router.patch("/{template_id}")
async def update_template(
    template_id: int,
    payload: schemas.TemplateUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"template": await service.update_template(current_user, template_id, payload)}


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> Response:
    await service.delete_template(current_user, template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{template_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_template(
    template_id: int,
    payload: schemas.DuplicateTemplateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"template": await service.duplicate_template(current_user, template_id, payload.name)}


@router.post("/{template_id}/render", response_model=schemas.RenderTemplateResponse)
async def render_template(
    template_id: int,
    payload: schemas.RenderTemplateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> schemas.RenderTemplateResponse:
    return await service.render_template(current_user, template_id, payload)
