"""TaskHive Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    IMPORTANCE_RANK,
    STORAGE_TO_UI,
    UI_TO_STORAGE,
    DomainEventType,
    FanoutStatus,
    FileScope,
    Importance,
    MemberRole,
    NotificationType,
    StorageStatus,
    UiStatus,
)
from .event import DomainEvent
from .notification import Notification, NotificationDraft
from .payloads import (
    FileUploadedPayload,
    MemberAddedPayload,
    MemberRemovedPayload,
    TaskCreatedPayload,
    TaskDeletedPayload,
    TaskUpdatedPayload,
    parse_payload,
)
from .project import Project, ProjectMember, ProjectParticipants
from .task import Task

__all__ = [
    # 枚举
    "StorageStatus",
    "UiStatus",
    "Importance",
    "MemberRole",
    "NotificationType",
    "DomainEventType",
    "FanoutStatus",
    "FileScope",
    # 词表映射
    "STORAGE_TO_UI",
    "UI_TO_STORAGE",
    "IMPORTANCE_RANK",
    # Task / Project
    "Task",
    "Project",
    "ProjectMember",
    "ProjectParticipants",
    # Notification
    "Notification",
    "NotificationDraft",
    # Event
    "DomainEvent",
    # Payloads
    "TaskCreatedPayload",
    "TaskUpdatedPayload",
    "TaskDeletedPayload",
    "MemberAddedPayload",
    "MemberRemovedPayload",
    "FileUploadedPayload",
    "parse_payload",
]
