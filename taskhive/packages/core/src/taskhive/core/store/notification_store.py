"""NotificationStore SQLite 实现

通知只由 Fan-out worker 写入；用户只能切换已读状态或删除自己的通知。
所有按 notification_id 的操作都附带 user_id 条件，防止越权修改。
写入方法不自动提交，由调用方通过 run_in_transaction 提交。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import NotificationType
from ..models.notification import Notification


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_notifications(self, notifications: list[Notification]) -> int:
        """批量写入通知（不自动提交）

        同一 (event_id, user_id, type) 已存在时跳过，保证重复投递幂等。

        Returns:
            实际写入的行数
        """
        inserted = 0
        for n in notifications:
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO notifications
                    (notification_id, user_id, type, title, message, read,
                     metadata, event_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    n.notification_id,
                    n.user_id,
                    n.type.value,
                    n.title,
                    n.message,
                    int(n.read),
                    json.dumps(n.metadata, ensure_ascii=False),
                    n.event_id,
                    n.created_at.isoformat(),
                ),
            )
            inserted += cursor.rowcount
        return inserted

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        """用户的通知，最新在前"""
        cursor = await self._conn.execute(
            """
            SELECT notification_id, user_id, type, title, message, read,
                   metadata, event_id, created_at
            FROM notifications WHERE user_id = ?
            ORDER BY created_at DESC, notification_id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def count_unread(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def get_notification(
        self, notification_id: str, user_id: str
    ) -> Notification | None:
        cursor = await self._conn.execute(
            """
            SELECT notification_id, user_id, type, title, message, read,
                   metadata, event_id, created_at
            FROM notifications WHERE notification_id = ? AND user_id = ?
            """,
            (notification_id, user_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_notification(row)

    async def list_for_event(self, event_id: str) -> list[Notification]:
        """某个领域事件产生的全部通知（用于排查投递结果）"""
        cursor = await self._conn.execute(
            """
            SELECT notification_id, user_id, type, title, message, read,
                   metadata, event_id, created_at
            FROM notifications WHERE event_id = ?
            ORDER BY notification_id ASC
            """,
            (event_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """标记单条已读；不存在或不属于该用户时返回 False"""
        cursor = await self._conn.execute(
            "UPDATE notifications SET read = 1 "
            "WHERE notification_id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return cursor.rowcount == 1

    async def mark_all_read(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0",
            (user_id,),
        )
        return cursor.rowcount

    async def delete(self, notification_id: str, user_id: str) -> bool:
        cursor = await self._conn.execute(
            "DELETE FROM notifications WHERE notification_id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return cursor.rowcount == 1

    async def delete_all(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "DELETE FROM notifications WHERE user_id = ?",
            (user_id,),
        )
        return cursor.rowcount

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        """将数据库行转换为 Notification 模型"""
        return Notification(
            notification_id=row[0],
            user_id=row[1],
            type=NotificationType(row[2]),
            title=row[3],
            message=row[4],
            read=bool(row[5]),
            metadata=json.loads(row[6]) if row[6] else {},
            event_id=row[7],
            created_at=datetime.fromisoformat(row[8]),
        )
