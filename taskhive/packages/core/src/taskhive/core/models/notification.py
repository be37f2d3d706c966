"""Notification Domain Model

单收件人：一个事件有多个收件人时产生多行。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import NotificationType


class NotificationDraft(BaseModel):
    """Fan-out 引擎计算出的待持久化通知（尚无 ID）"""

    user_id: str = Field(description="收件人")
    type: NotificationType
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict, description="客户端深链数据")


class Notification(BaseModel):
    """Notification 数据模型"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="收件人")
    type: NotificationType
    title: str
    message: str
    read: bool = Field(default=False)
    metadata: dict[str, Any] = Field(default_factory=dict)
    event_id: str | None = Field(default=None, description="产生该通知的领域事件")
    created_at: datetime
