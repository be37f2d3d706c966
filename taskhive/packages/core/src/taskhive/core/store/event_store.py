"""DomainEvent outbox SQLite 实现

domain_events 表是 Fan-out 的 outbox：
- 事件与触发它的主写入在同一事务内追加
- 只有投递状态字段（fanout_status / attempts / last_error）会被更新
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import DomainEventType, FanoutStatus
from ..models.event import DomainEvent

_COLUMNS = (
    "event_id, type, actor_id, project_id, payload, ts, "
    "fanout_status, attempts, last_error"
)


class SqliteEventStore:
    """DomainEvent outbox 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: DomainEvent) -> None:
        """追加事件

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            f"INSERT INTO domain_events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.event_id,
                event.type.value,
                event.actor_id,
                event.project_id,
                json.dumps(event.payload, ensure_ascii=False),
                event.ts.isoformat(),
                event.fanout_status.value,
                event.attempts,
                event.last_error,
            ),
        )

    async def get_event(self, event_id: str) -> DomainEvent | None:
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM domain_events WHERE event_id = ?",
            (event_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    async def list_by_status(self, status: FanoutStatus) -> list[DomainEvent]:
        """按投递状态查询，ULID 顺序即产生顺序"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM domain_events "
            "WHERE fanout_status = ? ORDER BY event_id ASC",
            (status.value,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def count_by_status(self) -> dict[FanoutStatus, int]:
        cursor = await self._conn.execute(
            "SELECT fanout_status, COUNT(*) FROM domain_events GROUP BY fanout_status"
        )
        rows = await cursor.fetchall()
        counts = {status: 0 for status in FanoutStatus}
        for row in rows:
            counts[FanoutStatus(row[0])] = row[1]
        return counts

    async def mark_delivered(self, event_id: str) -> None:
        """标记投递成功（不自动提交）"""
        await self._conn.execute(
            """
            UPDATE domain_events
            SET fanout_status = ?, attempts = attempts + 1, last_error = ''
            WHERE event_id = ?
            """,
            (FanoutStatus.DELIVERED.value, event_id),
        )

    async def mark_failed(self, event_id: str, error: str) -> None:
        """标记投递失败（不自动提交）"""
        await self._conn.execute(
            """
            UPDATE domain_events
            SET fanout_status = ?, attempts = attempts + 1, last_error = ?
            WHERE event_id = ?
            """,
            (FanoutStatus.FAILED.value, error, event_id),
        )

    async def mark_pending(self, event_ids: list[str]) -> None:
        """失败事件重新排队（不自动提交）"""
        await self._conn.executemany(
            "UPDATE domain_events SET fanout_status = ? WHERE event_id = ?",
            [(FanoutStatus.PENDING.value, event_id) for event_id in event_ids],
        )

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> DomainEvent:
        """将数据库行转换为 DomainEvent 模型"""
        return DomainEvent(
            event_id=row[0],
            type=DomainEventType(row[1]),
            actor_id=row[2],
            project_id=row[3],
            payload=json.loads(row[4]) if row[4] else {},
            ts=datetime.fromisoformat(row[5]),
            fanout_status=FanoutStatus(row[6]),
            attempts=row[7],
            last_error=row[8],
        )
