"""TaskService -- 任务创建/更新/删除/查询业务逻辑

写入流程：
1. 获取 task 级锁，读取当前行并校验访问权限与 expected_version
2. 状态归一化、负责人缺省、Focus 自动激活
3. 任务行与领域事件单事务提交（version + 1）
4. 提交后把事件放入 Fan-out 队列
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from ulid import ULID

from taskhive.core.config import TITLE_MAX_LENGTH, utc_today
from taskhive.core.exceptions import (
    NotFoundFailure,
    ValidationFailure,
    VersionConflictFailure,
)
from taskhive.core.focus import activated, auto_activate_on_status_change, cleared
from taskhive.core.models import (
    DomainEvent,
    DomainEventType,
    Importance,
    ProjectParticipants,
    StorageStatus,
    Task,
    TaskCreatedPayload,
    TaskDeletedPayload,
    TaskUpdatedPayload,
)
from taskhive.core.status_codec import normalize_incoming, triggers_focus_activation
from taskhive.core.store import (
    StoreGroup,
    create_task_with_event,
    delete_task_with_event,
    update_task_with_event,
)

from .notification_dispatcher import NotificationDispatcher
from .project_service import ProjectService
from .task_locks import cleanup_task_lock, get_task_lock

log = structlog.get_logger()

# PATCH 可修改的字段
UPDATABLE_FIELDS = (
    "title",
    "description",
    "status",
    "assigned_to",
    "importance",
    "completion_notes",
)

# 触发 task_updated 编辑通知的内容字段
_CONTENT_FIELDS = ("title", "description")


def _clean_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationFailure("Task title must not be empty")
    title = title.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationFailure(f"Task title must be at most {TITLE_MAX_LENGTH} characters")
    return title


def _parse_importance(value: Any) -> Importance:
    try:
        return Importance(value)
    except ValueError as e:
        raise ValidationFailure(f"Unknown importance: {value}") from e


def resolve_assignee(participants: ProjectParticipants, assigned_to: str | None) -> str:
    """负责人缺省/清空时落到项目 owner；指定时必须是项目参与者"""
    if not assigned_to:
        return participants.owner_id
    if not participants.has_access(assigned_to):
        raise ValidationFailure(f"User {assigned_to} is not a member of the project")
    return assigned_to


async def raise_lost_write(store_group: StoreGroup, task_id: str, expected: int) -> None:
    """条件写入未生效时区分"已删除"与"并发修改"

    Raises:
        NotFoundFailure: 行已被删除
        VersionConflictFailure: 行版本已被其他写入推进
    """
    current = await store_group.task_store.get_task(task_id)
    if current is None:
        raise NotFoundFailure("Task", task_id)
    raise VersionConflictFailure(task_id, expected, current.version)


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._stores = store_group
        self._dispatcher = dispatcher
        self._projects = ProjectService(store_group, dispatcher)

    async def create_task(
        self,
        project_id: str,
        actor_id: str,
        title: str,
        description: str = "",
        status: Any = None,
        assigned_to: str | None = None,
        importance: Any = Importance.MEDIUM,
        completion_notes: str | None = None,
    ) -> Task:
        """创建任务

        Args:
            status: 任意入站状态字符串，归一化为存储词表（缺省 todo）
            assigned_to: 缺省为项目 owner

        Raises:
            ValidationFailure: 标题为空/过长，或负责人不是项目参与者
        """
        participants = await self._projects.require_access(project_id, actor_id)
        title = _clean_title(title)
        storage_status = normalize_incoming(status)
        assignee = resolve_assignee(participants, assigned_to)

        today = utc_today()
        focus = (
            activated(actor_id, today)
            if triggers_focus_activation(None, storage_status, False)
            else cleared()
        )

        now = datetime.now(UTC)
        task = Task(
            task_id=str(ULID()),
            project_id=project_id,
            title=title,
            description=description or "",
            status=storage_status,
            assigned_to=assignee,
            importance=_parse_importance(importance or Importance.MEDIUM),
            completion_notes=(
                completion_notes if storage_status == StorageStatus.DONE else None
            ),
            created_by=actor_id,
            created_at=now,
            updated_at=now,
            **focus.model_dump(),
        )
        event = DomainEvent(
            event_id=str(ULID()),
            type=DomainEventType.TASK_CREATED,
            actor_id=actor_id,
            project_id=project_id,
            payload=TaskCreatedPayload(
                task_id=task.task_id,
                title=task.title,
                status=task.status,
                assigned_to=task.assigned_to,
            ).model_dump(mode="json"),
            ts=now,
        )
        await create_task_with_event(
            self._stores.conn,
            self._stores.task_store,
            self._stores.event_store,
            task,
            event,
        )

        log.info(
            "task_created",
            task_id=task.task_id,
            project_id=project_id,
            status=task.status,
            focus_activated=task.focus_today,
        )
        self._publish(event)
        return task

    async def update_task(
        self,
        task_id: str,
        actor_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> Task:
        """按字段更新任务（last-write-wins，可选版本校验）

        Args:
            changes: 需要修改的字段；assigned_to 显式为 None 表示重置为 owner
            expected_version: 调用方看到的版本，不符时返回 409

        Raises:
            NotFoundFailure: 任务不存在
            VersionConflictFailure: expected_version 已过期
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationFailure(f"Unknown task fields: {', '.join(sorted(unknown))}")

        lock = await get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise NotFoundFailure("Task", task_id)
            participants = await self._projects.require_access(task.project_id, actor_id)
            if expected_version is not None and expected_version != task.version:
                raise VersionConflictFailure(task_id, expected_version, task.version)

            updated = self._apply_changes(task, participants, actor_id, changes)
            if updated.model_dump(exclude={"updated_at", "version"}) == task.model_dump(
                exclude={"updated_at", "version"}
            ):
                # 无实际变化：不写库、不产生事件
                return task

            updated = updated.model_copy(
                update={"version": task.version + 1, "updated_at": datetime.now(UTC)}
            )
            event = self._build_update_event(task, updated, actor_id)
            written = await update_task_with_event(
                self._stores.conn,
                self._stores.task_store,
                self._stores.event_store,
                updated,
                task.version,
                event,
            )
            if not written:
                await raise_lost_write(self._stores, task_id, task.version)

        log.info(
            "task_updated",
            task_id=task_id,
            version=updated.version,
            previous_status=task.status,
            new_status=updated.status,
        )
        if event is not None:
            self._publish(event)
        return updated

    def _apply_changes(
        self,
        task: Task,
        participants: ProjectParticipants,
        actor_id: str,
        changes: dict[str, Any],
    ) -> Task:
        update: dict[str, Any] = {}
        if "title" in changes:
            update["title"] = _clean_title(changes["title"])
        if "description" in changes:
            update["description"] = changes["description"] or ""
        if "importance" in changes and changes["importance"] is not None:
            update["importance"] = _parse_importance(changes["importance"])
        if "assigned_to" in changes:
            update["assigned_to"] = resolve_assignee(participants, changes["assigned_to"])

        new_status = task.status
        if "status" in changes and changes["status"] is not None:
            new_status = normalize_incoming(changes["status"])
        update["status"] = new_status

        if new_status == StorageStatus.DONE:
            update["completion_notes"] = changes.get(
                "completion_notes", task.completion_notes
            )
        else:
            # 离开 done 时清空完成备注
            update["completion_notes"] = None

        focus = auto_activate_on_status_change(task, new_status, actor_id, utc_today())
        update.update(focus.model_dump())
        return task.model_copy(update=update)

    def _build_update_event(
        self, before: Task, after: Task, actor_id: str
    ) -> DomainEvent | None:
        edited = [
            field
            for field in _CONTENT_FIELDS
            if getattr(before, field) != getattr(after, field)
        ]
        if (
            before.status == after.status
            and before.assigned_to == after.assigned_to
            and not edited
        ):
            # 只改了重要程度/完成备注等：无需通知
            return None

        return DomainEvent(
            event_id=str(ULID()),
            type=DomainEventType.TASK_UPDATED,
            actor_id=actor_id,
            project_id=after.project_id,
            payload=TaskUpdatedPayload(
                task_id=after.task_id,
                title=after.title,
                previous_status=before.status,
                new_status=after.status,
                previous_assignee=before.assigned_to,
                assigned_to=after.assigned_to,
                edited_fields=edited,
            ).model_dump(mode="json"),
            ts=after.updated_at,
        )

    async def delete_task(self, task_id: str, actor_id: str) -> None:
        """删除任务（Focus 字段随行删除），通知负责人"""
        lock = await get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise NotFoundFailure("Task", task_id)
            await self._projects.require_access(task.project_id, actor_id)

            event = DomainEvent(
                event_id=str(ULID()),
                type=DomainEventType.TASK_DELETED,
                actor_id=actor_id,
                project_id=task.project_id,
                payload=TaskDeletedPayload(
                    task_id=task.task_id,
                    title=task.title,
                    assigned_to=task.assigned_to,
                ).model_dump(mode="json"),
                ts=datetime.now(UTC),
            )
            deleted = await delete_task_with_event(
                self._stores.conn,
                self._stores.task_store,
                self._stores.event_store,
                task_id,
                event,
            )
            if not deleted:
                raise NotFoundFailure("Task", task_id)

        await cleanup_task_lock(task_id)
        log.info("task_deleted", task_id=task_id, project_id=task.project_id)
        self._publish(event)

    async def get_task(self, task_id: str, actor_id: str) -> Task | None:
        """查询任务详情

        Returns:
            Task；任务不存在时返回 None
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            return None
        await self._projects.require_access(task.project_id, actor_id)
        return task

    async def list_tasks(
        self,
        project_id: str,
        actor_id: str,
        status: str | None = None,
    ) -> list[Task]:
        """查询项目任务列表，status 接受任意词表"""
        await self._projects.require_access(project_id, actor_id)
        storage_status = normalize_incoming(status) if status else None
        return await self._stores.task_store.list_tasks(project_id, storage_status)

    def _publish(self, event: DomainEvent) -> None:
        if self._dispatcher is not None:
            self._dispatcher.enqueue(event)
