"""DomainEvent Payload 子类型

所有领域事件的结构化 payload 定义。新增字段均需带默认值，
确保旧 outbox 行可以正常反序列化。
"""

from pydantic import BaseModel, Field

from .enums import DomainEventType, FileScope, StorageStatus


class TaskCreatedPayload(BaseModel):
    """task_created 事件 payload"""

    task_id: str
    title: str
    status: StorageStatus
    assigned_to: str | None = None
    actor_name: str = Field(default="", description="操作者展示名，缺省使用 actor_id")


class TaskUpdatedPayload(BaseModel):
    """task_updated 事件 payload

    一次写入只产生一个事件；具体通知规则由 Fan-out 引擎根据差异选择。
    """

    task_id: str
    title: str
    previous_status: StorageStatus
    new_status: StorageStatus
    previous_assignee: str | None = None
    assigned_to: str | None = None
    edited_fields: list[str] = Field(
        default_factory=list,
        description="标题/描述等内容字段的变更列表",
    )
    project_all_done: bool = Field(
        default=False,
        description="本次写入提交时项目内任务是否全部 done（仅完成事件有意义）",
    )
    actor_name: str = ""

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status

    @property
    def completed(self) -> bool:
        return self.status_changed and self.new_status == StorageStatus.DONE

    @property
    def reassigned(self) -> bool:
        return self.previous_assignee != self.assigned_to


class TaskDeletedPayload(BaseModel):
    """task_deleted 事件 payload"""

    task_id: str
    title: str
    assigned_to: str | None = None
    actor_name: str = ""


class MemberAddedPayload(BaseModel):
    """member_added 事件 payload"""

    user_id: str = Field(description="新加入的成员")
    project_name: str = ""
    actor_name: str = ""


class MemberRemovedPayload(BaseModel):
    """member_removed 事件 payload"""

    user_id: str = Field(description="被移除的成员")
    project_name: str = ""
    actor_name: str = ""


class FileUploadedPayload(BaseModel):
    """file_uploaded 事件 payload（文件本身由外部协作方存储）"""

    scope: FileScope
    file_name: str
    attachment_id: str = ""
    task_id: str | None = None
    task_title: str = ""
    assigned_to: str | None = None
    is_image: bool = False
    actor_name: str = ""


PAYLOAD_MODELS: dict[DomainEventType, type[BaseModel]] = {
    DomainEventType.TASK_CREATED: TaskCreatedPayload,
    DomainEventType.TASK_UPDATED: TaskUpdatedPayload,
    DomainEventType.TASK_DELETED: TaskDeletedPayload,
    DomainEventType.MEMBER_ADDED: MemberAddedPayload,
    DomainEventType.MEMBER_REMOVED: MemberRemovedPayload,
    DomainEventType.FILE_UPLOADED: FileUploadedPayload,
}


def parse_payload(event_type: DomainEventType, payload: dict) -> BaseModel:
    """按事件类型解析 payload

    Raises:
        pydantic.ValidationError: payload 与事件类型不匹配
    """
    return PAYLOAD_MODELS[event_type].model_validate(payload)
