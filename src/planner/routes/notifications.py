"""
Notification Routes

Local notification list and the real-time reminder channel.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..services.engine_service import get_engine_service

logger = logging.getLogger("planner.routes.notifications")
router = APIRouter(prefix="/notifications", tags=["notifications"])
ws_router = APIRouter(tags=["notifications"])


# ============================================
# Request/Response Models
# ============================================

class NotificationResponse(BaseModel):
    """Notification entry"""
    id: str
    type: str
    title: str
    message: str
    data: dict
    read: bool
    createdAt: str


# ============================================
# Routes
# ============================================

@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    group_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    """List stored notifications, newest first"""
    engine = get_engine_service()
    items = engine.notification_storage.list(group_id=group_id, limit=limit)
    return [NotificationResponse(**n.to_dict()) for n in items]


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str):
    """Mark a notification as read"""
    engine = get_engine_service()
    notification = engine.notification_storage.mark_read(notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse(**notification.to_dict())


@ws_router.websocket("/ws/notifications/{group_id}")
async def notifications_socket(websocket: WebSocket, group_id: str):
    """Push reminders of a group to the connected client"""
    manager = get_engine_service().connection_manager
    await manager.connect(group_id, websocket)
    try:
        while True:
            # Client messages are ignored; reading keeps disconnects detectable
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(group_id, websocket)
        logger.debug(f"WebSocket left group {group_id}")
