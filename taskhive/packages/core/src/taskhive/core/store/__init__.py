"""TaskHive Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .event_store import SqliteEventStore
from .notification_store import SqliteNotificationStore
from .project_store import SqliteProjectStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import (
    add_member_with_event,
    append_event_only,
    create_project_with_owner,
    create_task_with_event,
    delete_task_with_event,
    persist_fanout_result,
    record_fanout_failure,
    remove_member_with_event,
    requeue_failed_events,
    run_in_transaction,
    update_task_with_event,
)


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.project_store = SqliteProjectStore(conn)
        self.notification_store = SqliteNotificationStore(conn)
        self.event_store = SqliteEventStore(conn)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteProjectStore",
    "SqliteNotificationStore",
    "SqliteEventStore",
    "init_db",
    "verify_wal_mode",
    "run_in_transaction",
    "create_project_with_owner",
    "create_task_with_event",
    "update_task_with_event",
    "delete_task_with_event",
    "add_member_with_event",
    "remove_member_with_event",
    "append_event_only",
    "persist_fanout_result",
    "record_fanout_failure",
    "requeue_failed_events",
]
