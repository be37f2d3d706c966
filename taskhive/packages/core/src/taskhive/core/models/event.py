"""DomainEvent Domain Model

领域事件写入 outbox 表（domain_events），由 Fan-out worker 消费。
event_id 使用 ULID 格式，时间有序；只有投递状态字段会被更新。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import DomainEventType, FanoutStatus


class DomainEvent(BaseModel):
    """DomainEvent 数据模型"""

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    type: DomainEventType = Field(description="事件类型")
    actor_id: str = Field(description="触发事件的用户")
    project_id: str = Field(description="事件所属项目")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
    ts: datetime = Field(description="事件时间戳")
    fanout_status: FanoutStatus = Field(default=FanoutStatus.PENDING)
    attempts: int = Field(default=0, ge=0, description="已尝试投递次数")
    last_error: str = Field(default="", description="最近一次投递失败原因")
