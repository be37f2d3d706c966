"""NotificationDispatcher -- 领域事件 outbox 的后台投递器

主写入与事件行在同一事务内落盘后，事件 ID 被放入内存 asyncio.Queue，
后台 worker 逐个取出并计算收件人、写入通知、标记 delivered。

- 投递失败只记录日志并把 outbox 行标记为 failed，永不影响触发它的写操作
- 队列已满时事件保持 pending，由 requeue_pending()/重启时补投
- 通知表 (event_id, user_id, type) 唯一，重复投递不会产生重复通知
"""

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError
from ulid import ULID

from taskhive.core.config import FANOUT_QUEUE_MAXSIZE
from taskhive.core.exceptions import FanOutFailure, ValidationFailure
from taskhive.core.fanout import compute_notifications
from taskhive.core.models import (
    DomainEvent,
    DomainEventType,
    FanoutStatus,
    Notification,
    parse_payload,
)
from taskhive.core.store import (
    StoreGroup,
    append_event_only,
    persist_fanout_result,
    record_fanout_failure,
    requeue_failed_events,
)

log = structlog.get_logger()


class NotificationDispatcher:
    """Fan-out 投递器 -- 基于 asyncio.Queue 的单 worker 消费模型"""

    def __init__(
        self,
        store_group: StoreGroup,
        queue_maxsize: int = FANOUT_QUEUE_MAXSIZE,
    ) -> None:
        self._stores = store_group
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=queue_maxsize)
        self._queued_ids: set[str] = set()
        self._worker: asyncio.Task | None = None
        self.delivered_count = 0
        self.failed_count = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """启动后台 worker（重复调用无副作用）"""
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="notification-fanout")
        log.info("fanout_worker_started")

    async def stop(self) -> None:
        """停止后台 worker；未投递的事件留在 outbox 中保持 pending"""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        log.info("fanout_worker_stopped", pending_in_queue=self._queue.qsize())

    def enqueue(self, event: DomainEvent) -> bool:
        """把已持久化的事件放入投递队列

        Returns:
            是否成功入队（队列满或已在队列中时返回 False）
        """
        if event.event_id in self._queued_ids:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning(
                "fanout_queue_full",
                event_id=event.event_id,
                event_type=event.type,
                maxsize=self._queue.maxsize,
            )
            return False
        self._queued_ids.add(event.event_id)
        return True

    async def emit_domain_event(
        self,
        event_type: DomainEventType,
        actor_id: str,
        project_id: str,
        payload: dict[str, Any],
    ) -> DomainEvent:
        """外部协作方上报事件：校验 payload、写入 outbox 并入队

        Raises:
            ValidationFailure: payload 与事件类型不匹配
        """
        try:
            parsed = parse_payload(event_type, payload)
        except ValidationError as e:
            raise ValidationFailure(
                f"Invalid payload for event type {event_type}: {e.errors()[0]['msg']}"
            ) from e

        event = DomainEvent(
            event_id=str(ULID()),
            type=event_type,
            actor_id=actor_id,
            project_id=project_id,
            payload=parsed.model_dump(mode="json"),
            ts=datetime.now(UTC),
        )
        await append_event_only(self._stores.conn, self._stores.event_store, event)
        log.info("domain_event_emitted", event_id=event.event_id, event_type=event_type)
        self.enqueue(event)
        return event

    async def deliver(self, event: DomainEvent) -> int:
        """投递单个事件

        Returns:
            新写入的通知条数；失败时返回 0（失败已记录到 outbox 行）
        """
        try:
            notifications = await self._build_notifications(event)
            inserted = await persist_fanout_result(
                self._stores.conn,
                self._stores.notification_store,
                self._stores.event_store,
                event.event_id,
                notifications,
            )
        except Exception as e:
            failure = FanOutFailure(event.event_id, e)
            self.failed_count += 1
            log.error(
                "fanout_failed",
                event_id=event.event_id,
                event_type=event.type,
                project_id=event.project_id,
                error=failure.message,
            )
            await record_fanout_failure(
                self._stores.conn,
                self._stores.event_store,
                event.event_id,
                str(e),
            )
            return 0

        self.delivered_count += 1
        log.info(
            "fanout_delivered",
            event_id=event.event_id,
            event_type=event.type,
            project_id=event.project_id,
            recipients=len(notifications),
            inserted=inserted,
        )
        return inserted

    async def _build_notifications(self, event: DomainEvent) -> list[Notification]:
        participants = await self._stores.project_store.get_participants(
            event.project_id
        )
        if participants is None:
            # 项目已删除：事件仍标记为已投递，不产生通知
            return []

        now = datetime.now(UTC)
        return [
            Notification(
                notification_id=str(ULID()),
                user_id=draft.user_id,
                type=draft.type,
                title=draft.title,
                message=draft.message,
                metadata=draft.metadata,
                event_id=event.event_id,
                created_at=now,
            )
            for draft in compute_notifications(event, participants)
        ]

    async def drain(self) -> None:
        """等待队列中的事件全部处理完

        worker 未运行时在当前协程内同步处理。
        """
        if self.running:
            await self._queue.join()
            return
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.deliver(event)
            finally:
                self._queued_ids.discard(event.event_id)
                self._queue.task_done()

    async def requeue_pending(self) -> int:
        """把 outbox 中仍为 pending 的事件重新入队（启动时调用）"""
        events = await self._stores.event_store.list_by_status(FanoutStatus.PENDING)
        queued = sum(1 for event in events if self.enqueue(event))
        if events:
            log.info("fanout_pending_requeued", pending=len(events), queued=queued)
        return queued

    async def retry_failed(self) -> int:
        """把 failed 事件标记回 pending 并重新入队"""
        events = await self._stores.event_store.list_by_status(FanoutStatus.FAILED)
        if not events:
            return 0
        await requeue_failed_events(
            self._stores.conn,
            self._stores.event_store,
            [e.event_id for e in events],
        )
        queued = sum(1 for event in events if self.enqueue(event))
        log.info("fanout_failed_requeued", failed=len(events), queued=queued)
        return queued

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            except Exception:
                # record_fanout_failure 本身失败：事件保持原状态，等待下次补投
                log.exception("fanout_worker_error", event_id=event.event_id)
            finally:
                self._queued_ids.discard(event.event_id)
                self._queue.task_done()
