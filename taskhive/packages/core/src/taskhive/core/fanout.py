"""Fan-out 收件人规则 -- 一个领域事件 -> 每个收件人一条通知

纯函数实现，不做 I/O；持久化由 gateway 的 NotificationDispatcher 负责。

规则（操作者本人永远不会收到通知）：
- task_created: owner + 成员 + 负责人（负责人收到指派措辞的 task_created）
- task_updated -> done: owner + 成员 + 负责人；若写入提交时项目全部 done，另发 project_completed
- task_updated 状态变化（非 done）/ 内容编辑: 仅负责人
- task_updated 重新指派: 新负责人收到 task_assigned
- task_deleted: 仅负责人
- member_added: 新成员收到邀请，其余既有参与者收到 new_member_joined
- member_removed: 被移除者（自己退出时静默）
- file_uploaded: owner + 成员（task 作用域额外加负责人）

同一事件内按收件人去重，保留最具体规则产生的消息。
"""

from typing import Any

from .config import NOTIFICATION_TITLE_PREVIEW
from .models.enums import DomainEventType, FileScope, NotificationType
from .models.event import DomainEvent
from .models.notification import NotificationDraft
from .models.payloads import (
    FileUploadedPayload,
    MemberAddedPayload,
    MemberRemovedPayload,
    TaskCreatedPayload,
    TaskDeletedPayload,
    TaskUpdatedPayload,
    parse_payload,
)
from .models.project import ProjectParticipants

# 规则具体程度：数值越大越具体
GENERIC = 0
ASSIGNEE = 1
DIRECT = 2


class RecipientSet:
    """单个事件的收件人集合，按收件人去重"""

    def __init__(self, actor_id: str) -> None:
        self._actor_id = actor_id
        self._drafts: dict[str, tuple[int, NotificationDraft]] = {}

    def offer(
        self,
        user_id: str | None,
        specificity: int,
        type: NotificationType,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> None:
        """提交一个候选收件人；同一收件人只保留更具体的那条"""
        if not user_id or user_id == self._actor_id:
            return
        current = self._drafts.get(user_id)
        if current is not None and current[0] >= specificity:
            return
        draft = NotificationDraft(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata=dict(metadata),
        )
        # 替换时保持原插入顺序
        self._drafts[user_id] = (specificity, draft)

    def drafts(self) -> list[NotificationDraft]:
        return [draft for _, draft in self._drafts.values()]

    def __len__(self) -> int:
        return len(self._drafts)


def _preview(text: str) -> str:
    if len(text) <= NOTIFICATION_TITLE_PREVIEW:
        return text
    return text[: NOTIFICATION_TITLE_PREVIEW - 3] + "..."


def _everyone(participants: ProjectParticipants) -> list[str]:
    return [participants.owner_id, *participants.member_ids]


def compute_notifications(
    event: DomainEvent,
    participants: ProjectParticipants,
) -> list[NotificationDraft]:
    """计算一个领域事件产生的全部通知

    Args:
        event: 领域事件
        participants: 事件所属项目的 owner + 成员快照

    Returns:
        通知草稿列表，每个收件人最多一条（project_completed 为独立事件，单独去重）
    """
    payload = parse_payload(event.type, event.payload)
    actor_name = getattr(payload, "actor_name", "") or event.actor_id
    project = participants.project
    base_meta: dict[str, Any] = {
        "project_id": project.project_id,
        "project_name": project.name,
        "event_id": event.event_id,
    }

    if event.type == DomainEventType.TASK_CREATED:
        return _task_created(event, payload, participants, actor_name, base_meta)
    if event.type == DomainEventType.TASK_UPDATED:
        return _task_updated(event, payload, participants, actor_name, base_meta)
    if event.type == DomainEventType.TASK_DELETED:
        return _task_deleted(event, payload, actor_name, base_meta)
    if event.type == DomainEventType.MEMBER_ADDED:
        return _member_added(event, payload, participants, actor_name, base_meta)
    if event.type == DomainEventType.MEMBER_REMOVED:
        return _member_removed(event, payload, participants, actor_name, base_meta)
    if event.type == DomainEventType.FILE_UPLOADED:
        return _file_uploaded(event, payload, participants, actor_name, base_meta)
    return []


def _task_created(
    event: DomainEvent,
    payload: TaskCreatedPayload,
    participants: ProjectParticipants,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    title = _preview(payload.title)
    meta = {**base_meta, "task_id": payload.task_id, "task_title": payload.title}
    project_name = participants.project.name

    for user_id in _everyone(participants):
        recipients.offer(
            user_id,
            GENERIC,
            NotificationType.TASK_CREATED,
            f"New task in {project_name}",
            f'{actor_name} created "{title}"',
            meta,
        )
    recipients.offer(
        payload.assigned_to,
        ASSIGNEE,
        NotificationType.TASK_CREATED,
        "New task assigned to you",
        f'{actor_name} created "{title}" and assigned it to you',
        meta,
    )
    return recipients.drafts()


def _task_updated(
    event: DomainEvent,
    payload: TaskUpdatedPayload,
    participants: ProjectParticipants,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    title = _preview(payload.title)
    meta = {
        **base_meta,
        "task_id": payload.task_id,
        "task_title": payload.title,
        "previous_status": payload.previous_status.value,
        "new_status": payload.new_status.value,
    }
    project_name = participants.project.name

    if payload.completed:
        for user_id in _everyone(participants):
            recipients.offer(
                user_id,
                GENERIC,
                NotificationType.TASK_COMPLETED,
                f"Task completed in {project_name}",
                f'{actor_name} completed "{title}"',
                meta,
            )
        recipients.offer(
            payload.assigned_to,
            ASSIGNEE,
            NotificationType.TASK_COMPLETED,
            "Your task was completed",
            f'{actor_name} marked your task "{title}" as finished',
            meta,
        )
    elif payload.status_changed:
        recipients.offer(
            payload.assigned_to,
            ASSIGNEE,
            NotificationType.STATUS_CHANGED,
            "Task status changed",
            f'{actor_name} moved "{title}" from '
            f"{payload.previous_status.value} to {payload.new_status.value}",
            meta,
        )
    elif payload.edited_fields:
        recipients.offer(
            payload.assigned_to,
            ASSIGNEE,
            NotificationType.TASK_UPDATED,
            "Task updated",
            f'{actor_name} edited {", ".join(payload.edited_fields)} of "{title}"',
            meta,
        )

    if payload.reassigned:
        recipients.offer(
            payload.assigned_to,
            DIRECT,
            NotificationType.TASK_ASSIGNED,
            "Task assigned to you",
            f'{actor_name} assigned "{title}" to you',
            meta,
        )

    drafts = recipients.drafts()
    # 项目完成状态在写入事务内确定，投递时不再重新读取
    if payload.completed and payload.project_all_done:
        drafts.extend(_project_completed(event, participants, base_meta))
    return drafts


def _project_completed(
    event: DomainEvent,
    participants: ProjectParticipants,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    project_name = participants.project.name
    for user_id in _everyone(participants):
        recipients.offer(
            user_id,
            GENERIC,
            NotificationType.PROJECT_COMPLETED,
            "Project completed",
            f'Every task in "{project_name}" is finished',
            base_meta,
        )
    return recipients.drafts()


def _task_deleted(
    event: DomainEvent,
    payload: TaskDeletedPayload,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    recipients.offer(
        payload.assigned_to,
        ASSIGNEE,
        NotificationType.TASK_DELETED,
        "Task deleted",
        f'{actor_name} deleted your task "{_preview(payload.title)}"',
        {**base_meta, "task_id": payload.task_id, "task_title": payload.title},
    )
    return recipients.drafts()


def _member_added(
    event: DomainEvent,
    payload: MemberAddedPayload,
    participants: ProjectParticipants,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    project_name = payload.project_name or participants.project.name
    meta = {**base_meta, "member_id": payload.user_id}

    recipients.offer(
        payload.user_id,
        DIRECT,
        NotificationType.PROJECT_INVITE,
        "Added to project",
        f'{actor_name} added you to "{project_name}"',
        meta,
    )
    for user_id in _everyone(participants):
        if user_id == payload.user_id:
            continue
        recipients.offer(
            user_id,
            GENERIC,
            NotificationType.NEW_MEMBER_JOINED,
            f"New member in {project_name}",
            f'{payload.user_id} joined "{project_name}"',
            meta,
        )
    return recipients.drafts()


def _member_removed(
    event: DomainEvent,
    payload: MemberRemovedPayload,
    participants: ProjectParticipants,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    project_name = payload.project_name or participants.project.name
    recipients.offer(
        payload.user_id,
        DIRECT,
        NotificationType.PROJECT_REMOVED,
        "Removed from project",
        f'{actor_name} removed you from "{project_name}"',
        {**base_meta, "member_id": payload.user_id},
    )
    return recipients.drafts()


def _file_uploaded(
    event: DomainEvent,
    payload: FileUploadedPayload,
    participants: ProjectParticipants,
    actor_name: str,
    base_meta: dict[str, Any],
) -> list[NotificationDraft]:
    recipients = RecipientSet(event.actor_id)
    project_name = participants.project.name
    meta = {
        **base_meta,
        "attachment_id": payload.attachment_id,
        "file_name": payload.file_name,
        "is_image": payload.is_image,
    }
    if payload.scope == FileScope.TASK:
        task_title = _preview(payload.task_title or "Untitled task")
        meta.update(task_id=payload.task_id, task_title=payload.task_title)
        target = f'task "{task_title}"'
    else:
        target = "the project"

    for user_id in _everyone(participants):
        recipients.offer(
            user_id,
            GENERIC,
            NotificationType.FILE_UPLOADED,
            f"File uploaded in {project_name}",
            f'{actor_name} uploaded "{payload.file_name}" to {target}',
            meta,
        )
    if payload.scope == FileScope.TASK:
        recipients.offer(
            payload.assigned_to,
            ASSIGNEE,
            NotificationType.FILE_UPLOADED,
            "File uploaded to your task",
            f'{actor_name} uploaded "{payload.file_name}" to {target}',
            meta,
        )
    return recipients.drafts()
