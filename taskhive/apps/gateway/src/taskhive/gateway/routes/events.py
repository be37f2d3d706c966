"""领域事件路由 -- 外部协作方（聊天、笔记、附件服务）的通知入口

POST /api/events: 上报领域事件，写入 outbox 后异步 Fan-out，返回 202
POST /api/events/retry-failed: 管理员把投递失败的事件重新排队
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from taskhive.core.exceptions import AuthorizationFailure
from taskhive.core.models import DomainEventType

from ..deps import get_current_user, get_dispatcher, get_store_group
from ..services.project_service import ProjectService, is_admin

router = APIRouter()


class EventRequest(BaseModel):
    type: DomainEventType
    project_id: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class EventAccepted(BaseModel):
    event_id: str
    status: str


@router.post("/api/events", response_model=EventAccepted, status_code=202)
async def emit_event(
    req: EventRequest,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    """上报事件；调用者即 actor，必须能访问目标项目"""
    await ProjectService(store_group).require_access(req.project_id, user_id)
    event = await dispatcher.emit_domain_event(
        req.type, user_id, req.project_id, req.payload
    )
    return EventAccepted(event_id=event.event_id, status=event.fanout_status.value)


@router.post("/api/events/retry-failed")
async def retry_failed(
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    if not is_admin(user_id):
        raise AuthorizationFailure("Only administrators can requeue failed events")
    requeued = await dispatcher.retry_failed()
    return {"requeued": requeued}
