"""任务级写锁 -- 序列化同一任务行的读-改-写

锁字典为进程级共享（服务实例按请求创建）；任务删除后清理对应的锁，
避免字典无限增长。
"""

import asyncio

_task_locks: dict[str, asyncio.Lock] = {}
_task_locks_guard = asyncio.Lock()


async def get_task_lock(task_id: str) -> asyncio.Lock:
    """获取 task 级别锁"""
    async with _task_locks_guard:
        lock = _task_locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            _task_locks[task_id] = lock
        return lock


async def cleanup_task_lock(task_id: str) -> None:
    """任务删除后清理 lock（仍被持有时保留）"""
    async with _task_locks_guard:
        lock = _task_locks.get(task_id)
        if lock is not None and not lock.locked():
            _task_locks.pop(task_id, None)


def active_lock_count() -> int:
    return len(_task_locks)
