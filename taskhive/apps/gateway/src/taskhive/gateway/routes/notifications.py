"""通知路由 -- 只操作调用者自己的通知

GET /api/notifications: 最新通知 + 未读数
PUT /api/notifications/{notification_id}/read: 标记单条已读
PUT /api/notifications/read-all: 全部标记已读
DELETE /api/notifications/{notification_id}: 删除单条
DELETE /api/notifications: 删除全部
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from taskhive.core.models import Notification

from ..deps import get_current_user, get_store_group
from ..services.notification_service import NotificationService

router = APIRouter()


class NotificationOut(BaseModel):
    notification_id: str
    user_id: str
    type: str
    title: str
    message: str
    read: bool
    metadata: dict[str, Any]
    event_id: str | None
    created_at: str

    @classmethod
    def from_notification(cls, n: Notification) -> "NotificationOut":
        return cls(
            notification_id=n.notification_id,
            user_id=n.user_id,
            type=n.type.value,
            title=n.title,
            message=n.message,
            read=n.read,
            metadata=n.metadata,
            event_id=n.event_id,
            created_at=n.created_at.isoformat(),
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int


@router.get("/api/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = NotificationService(store_group)
    notifications, unread = await service.list_for_user(user_id, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationOut.from_notification(n) for n in notifications],
        unread_count=unread,
    )


@router.put("/api/notifications/read-all")
async def mark_all_read(
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = NotificationService(store_group)
    updated = await service.mark_all_read(user_id)
    return {"updated": updated}


@router.put(
    "/api/notifications/{notification_id}/read",
    response_model=NotificationOut,
)
async def mark_read(
    notification_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = NotificationService(store_group)
    notification = await service.mark_read(notification_id, user_id)
    return NotificationOut.from_notification(notification)


@router.delete("/api/notifications")
async def delete_all(
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = NotificationService(store_group)
    deleted = await service.delete_all(user_id)
    return {"deleted": deleted}


@router.delete("/api/notifications/{notification_id}")
async def delete_notification(
    notification_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = NotificationService(store_group)
    await service.delete(notification_id, user_id)
    return {"deleted": True}
