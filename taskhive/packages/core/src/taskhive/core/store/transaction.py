"""主写入 + outbox 事件原子事务封装

主写入与其领域事件在同一 SQLite 事务内提交：
要么两者都落库，要么都回滚。Fan-out 在提交之后异步进行。

请求处理与 Fan-out worker 共享同一个连接，
写事务按连接串行化，避免一方的 commit/rollback 波及另一方未完成的写入。
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiosqlite

from ..models.enums import DomainEventType
from ..models.event import DomainEvent
from ..models.notification import Notification
from ..models.payloads import TaskUpdatedPayload
from ..models.project import Project, ProjectMember
from ..models.task import Task
from .event_store import SqliteEventStore
from .notification_store import SqliteNotificationStore
from .project_store import SqliteProjectStore
from .task_store import SqliteTaskStore

T = TypeVar("T")

_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _write_lock(conn: aiosqlite.Connection) -> asyncio.Lock:
    lock = _write_locks.get(conn)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[conn] = lock
    return lock


async def run_in_transaction(
    conn: aiosqlite.Connection,
    write: Callable[[], Awaitable[T]],
) -> T:
    """执行写操作并提交；任何异常都回滚后原样抛出"""
    async with _write_lock(conn):
        try:
            result = await write()
            await conn.commit()
            return result
        except Exception:
            await conn.rollback()
            raise


async def create_project_with_owner(
    conn: aiosqlite.Connection,
    project_store: SqliteProjectStore,
    project: Project,
) -> None:
    """创建项目（owner 隐式拥有，不产生领域事件）"""
    await run_in_transaction(conn, lambda: project_store.create_project(project))


async def create_task_with_event(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    event_store: SqliteEventStore,
    task: Task,
    event: DomainEvent,
) -> None:
    """在同一事务内写入新任务和 task_created 事件"""

    async def _write() -> None:
        await task_store.create_task(task)
        await event_store.append_event(event)

    await run_in_transaction(conn, _write)


async def update_task_with_event(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    event_store: SqliteEventStore,
    task: Task,
    previous_version: int,
    event: DomainEvent | None,
) -> bool:
    """在同一事务内覆盖任务行并追加事件

    完成事件在同一事务内记录 project_all_done，
    Fan-out 据此判定项目完成，而不是在投递时重新读取任务状态。

    Args:
        previous_version: 写入前的行版本；库中版本不符时不写入
        event: 无需通知的写入（如 Focus 切换）传 None

    Returns:
        False 表示行已被并发修改或删除，事务已回滚
    """

    async def _write() -> bool:
        updated = await task_store.update_task(task, previous_version)
        if updated and event is not None:
            if event.type == DomainEventType.TASK_UPDATED and (
                TaskUpdatedPayload.model_validate(event.payload).completed
            ):
                event.payload["project_all_done"] = await task_store.all_tasks_done(
                    task.project_id
                )
            await event_store.append_event(event)
        return updated

    return await run_in_transaction(conn, _write)


async def delete_task_with_event(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    event_store: SqliteEventStore,
    task_id: str,
    event: DomainEvent,
) -> bool:
    """在同一事务内删除任务并追加 task_deleted 事件"""

    async def _write() -> bool:
        deleted = await task_store.delete_task(task_id)
        if deleted:
            await event_store.append_event(event)
        return deleted

    return await run_in_transaction(conn, _write)


async def add_member_with_event(
    conn: aiosqlite.Connection,
    project_store: SqliteProjectStore,
    event_store: SqliteEventStore,
    member: ProjectMember,
    event: DomainEvent,
) -> None:
    """在同一事务内添加成员并追加 member_added 事件"""

    async def _write() -> None:
        await project_store.add_member(member)
        await event_store.append_event(event)

    await run_in_transaction(conn, _write)


async def remove_member_with_event(
    conn: aiosqlite.Connection,
    project_store: SqliteProjectStore,
    event_store: SqliteEventStore,
    project_id: str,
    user_id: str,
    event: DomainEvent,
) -> bool:
    """在同一事务内移除成员并追加 member_removed 事件"""

    async def _write() -> bool:
        removed = await project_store.remove_member(project_id, user_id)
        if removed:
            await event_store.append_event(event)
        return removed

    return await run_in_transaction(conn, _write)


async def append_event_only(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    event: DomainEvent,
) -> None:
    """仅追加事件（外部协作方通过 /api/events 上报时使用）"""
    await run_in_transaction(conn, lambda: event_store.append_event(event))


async def persist_fanout_result(
    conn: aiosqlite.Connection,
    notification_store: SqliteNotificationStore,
    event_store: SqliteEventStore,
    event_id: str,
    notifications: list[Notification],
) -> int:
    """在同一事务内写入通知并把事件标记为 delivered

    Returns:
        实际写入的通知行数（重复投递时为 0）
    """

    async def _write() -> int:
        inserted = await notification_store.insert_notifications(notifications)
        await event_store.mark_delivered(event_id)
        return inserted

    return await run_in_transaction(conn, _write)


async def record_fanout_failure(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    event_id: str,
    error: str,
) -> None:
    """标记事件投递失败，等待 retry_failed 重新排队"""
    await run_in_transaction(conn, lambda: event_store.mark_failed(event_id, error))


async def requeue_failed_events(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    event_ids: list[str],
) -> None:
    """把失败事件重新标记为 pending"""
    await run_in_transaction(conn, lambda: event_store.mark_pending(event_ids))
