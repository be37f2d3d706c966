"""枚举定义

包含两套任务状态词表（存储 / UI）、通知类型、领域事件类型、成员角色等枚举，
以及存储词表与 UI 词表的配对映射。
"""

from enum import StrEnum


class StorageStatus(StrEnum):
    """任务状态 -- 持久化词表"""

    WISHLIST = "wishlist"
    TODO = "todo"
    ACTIVE = "active"
    DONE = "done"


class UiStatus(StrEnum):
    """任务状态 -- 展示词表"""

    WISHLIST = "wishlist"
    TODO = "todo"
    IN_PROCESS = "in-process"
    FINISHED = "finished"


# 存储 -> UI 配对（一一对应）
STORAGE_TO_UI: dict[StorageStatus, UiStatus] = {
    StorageStatus.WISHLIST: UiStatus.WISHLIST,
    StorageStatus.TODO: UiStatus.TODO,
    StorageStatus.ACTIVE: UiStatus.IN_PROCESS,
    StorageStatus.DONE: UiStatus.FINISHED,
}

UI_TO_STORAGE: dict[UiStatus, StorageStatus] = {
    ui: storage for storage, ui in STORAGE_TO_UI.items()
}


class Importance(StrEnum):
    """任务重要程度"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Focus 列表排序权重（越小越靠前）
IMPORTANCE_RANK: dict[Importance, int] = {
    Importance.URGENT: 0,
    Importance.HIGH: 1,
    Importance.MEDIUM: 2,
    Importance.LOW: 3,
}


class MemberRole(StrEnum):
    """项目成员角色"""

    OWNER = "owner"
    MEMBER = "member"


class NotificationType(StrEnum):
    """通知类型（封闭集合）"""

    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_DELETED = "task_deleted"
    TASK_UPDATED = "task_updated"
    STATUS_CHANGED = "status_changed"
    PROJECT_INVITE = "project_invite"
    PROJECT_REMOVED = "project_removed"
    PROJECT_COMPLETED = "project_completed"
    NEW_MEMBER_JOINED = "new_member_joined"
    FILE_UPLOADED = "file_uploaded"


class DomainEventType(StrEnum):
    """领域事件类型 -- Fan-out 引擎唯一入口的事件分类"""

    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    FILE_UPLOADED = "file_uploaded"


class FanoutStatus(StrEnum):
    """outbox 行的投递状态"""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class FileScope(StrEnum):
    """文件上传的作用域"""

    TASK = "task"
    PROJECT = "project"
