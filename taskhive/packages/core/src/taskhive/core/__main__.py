"""CLI 入口模块 -- python -m taskhive.core <command>

支持的命令：
  outbox-status   统计 domain_events 各投递状态的事件数
  requeue-failed  把投递失败的事件重新标记为 pending（下次 gateway 启动时投递）
"""

import asyncio
import sys

from .config import get_db_path
from .models.enums import FanoutStatus

_USAGE = """用法: python -m taskhive.core <command>
命令:
  outbox-status   统计 domain_events 各投递状态的事件数
  requeue-failed  把投递失败的事件重新标记为 pending"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "outbox-status":
        asyncio.run(outbox_status())
    elif command == "requeue-failed":
        asyncio.run(requeue_failed())
    else:
        print(f"未知命令: {command}")
        print("可用命令: outbox-status, requeue-failed")
        sys.exit(1)


async def outbox_status() -> dict[FanoutStatus, int]:
    """打印并返回 outbox 各状态计数"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        counts = await store_group.event_store.count_by_status()
    finally:
        await store_group.conn.close()

    for status, count in counts.items():
        print(f"{status.value:>10}: {count}")
    return counts


async def requeue_failed() -> int:
    """把 failed 事件重新标记为 pending，返回处理条数"""
    from .store import create_store_group, requeue_failed_events

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        failed = await store_group.event_store.list_by_status(FanoutStatus.FAILED)
        if failed:
            await requeue_failed_events(
                store_group.conn,
                store_group.event_store,
                [event.event_id for event in failed],
            )
    finally:
        await store_group.conn.close()

    print(f"重新排队 {len(failed)} 条事件")
    return len(failed)


if __name__ == "__main__":
    main()
