"""
Staff notification endpoints.

REST routes manage the in-memory list; the websocket pushes a toast
alert to connected back-office clients for every new notification.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from gestro.api.deps import get_notification_center, get_session_factory, require_staff
from gestro.core.config import get_settings
from gestro.schemas import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    StaffNotificationResponse,
)
from gestro.services.context import ServiceContext
from gestro.services.notifications import StaffNotificationCenter
from gestro.services.profiles import ProfileRepository
from gestro.services.realtime import get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/notifications",
    tags=["Staff Notifications"],
    dependencies=[Depends(require_staff)],
)
ws_router = APIRouter(tags=["Staff Notifications"])


@router.get("", response_model=List[StaffNotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    center: StaffNotificationCenter = Depends(get_notification_center),
):
    notifications = center.notifications
    if unread_only:
        notifications = [n for n in notifications if not n.read]
    return [n.to_dict() for n in notifications]


@router.get("/unread-count")
async def unread_count(center: StaffNotificationCenter = Depends(get_notification_center)) -> dict:
    return {"unread_count": center.unread_count}


@router.post("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    center: StaffNotificationCenter = Depends(get_notification_center),
) -> dict:
    if not center.mark_as_read(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return {"success": True, "unread_count": center.unread_count}


@router.post("/read-all")
async def mark_all_as_read(center: StaffNotificationCenter = Depends(get_notification_center)) -> dict:
    return {"success": True, "marked": center.mark_all_as_read()}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_notification(
    notification_id: str,
    center: StaffNotificationCenter = Depends(get_notification_center),
):
    if not center.remove(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_notifications(center: StaffNotificationCenter = Depends(get_notification_center)):
    center.clear()


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(center: StaffNotificationCenter = Depends(get_notification_center)):
    return NotificationPreferences(
        show_notifications=center.preferences.show_notifications,
        play_sounds=center.preferences.play_sounds,
    )


@router.patch("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    request: NotificationPreferencesUpdate,
    center: StaffNotificationCenter = Depends(get_notification_center),
):
    preferences = center.update_preferences(
        show_notifications=request.show_notifications,
        play_sounds=request.play_sounds,
    )
    return NotificationPreferences(
        show_notifications=preferences.show_notifications,
        play_sounds=preferences.play_sounds,
    )


# =============================================================================
# WEBSOCKET
# =============================================================================

async def is_staff_user(session_factory: async_sessionmaker, user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    async with session_factory() as session:
        ctx = ServiceContext(session=session, feed=get_change_feed(), settings=get_settings())
        profile = await ProfileRepository(ctx).get_profile(user_id)
    return profile is not None and profile.is_staff


@ws_router.websocket("/ws/staff/notifications")
async def staff_notifications_socket(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None),
    center: StaffNotificationCenter = Depends(get_notification_center),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Push channel for the back-office.

    Browsers cannot set custom headers on a websocket handshake, so the
    user id may also come as a `user_id` query parameter.
    """
    user_id = user_id or websocket.headers.get("x-user-id")
    if not await is_staff_user(session_factory, user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    sink = websocket.send_json
    center.add_sink(sink)
    logger.info(f"Staff client {user_id} connected to notifications")

    try:
        await websocket.send_json({"type": "hello", "unread_count": center.unread_count})
        while True:
            # Clients only ever send keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Staff client {user_id} disconnected")
    finally:
        center.remove_sink(sink)
