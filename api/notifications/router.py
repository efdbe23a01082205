"""
FastAPI routers for notification endpoints and the notification WebSocket.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from auth import dependencies as auth_dependencies
from auth import service as auth_service

from . import schemas, service
from .websocket import manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications")
ws_router = APIRouter()


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    read: bool | None = Query(default=None),
    type: schemas.NotificationType | None = Query(default=None),
    channel: schemas.NotificationChannel | None = Query(default=None),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_notifications(
        current_user,
        page=page,
        page_size=page_size,
        read=read,
        type=type,
        channel=channel,
    )


@router.get("/unread-count")
async def unread_count(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return await service.unread_count(current_user)


@router.post("/read")
async def mark_read(
    payload: schemas.MarkReadRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.mark_read(current_user, payload)


@router.get("/preferences")
async def get_preferences(current_user: dict = Depends(auth_dependencies.get_current_user)) -> dict:
    return await service.get_preferences(current_user)


@router.put("/preferences")
async def update_preferences(
    payload: schemas.PreferencesUpdateRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.update_preferences(current_user, payload)


@router.post("/test", status_code=status.HTTP_201_CREATED)
async def send_test_notification(
    payload: schemas.SampleNotificationRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return {"notification": await service.send_test(current_user, payload)}


@ws_router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str = Query(default="")) -> None:
    """
    Authenticated push channel. Clients may send "ping" to keep the socket alive.
    """
    try:
        user = await auth_service.get_user_from_access_token(token)
    except HTTPException as exc:
        logger.info("ws_rejected reason=%s", exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    user_id = int(user["id"])
    await manager.connect(user_id, websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text.strip().lower() == "ping":
                await websocket.send_json({"event": "pong", "data": None})
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(user_id, websocket)
