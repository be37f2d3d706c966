"""SyncPoller -- 以固定间隔失效项目缓存键，实现多会话最终一致

没有服务端推送通道：每个正在查看的项目由一个 asyncio.Task 轮询，
每轮只标记缓存条目 stale，由正常读取路径惰性重新拉取。
键集合中没有活跃消费者时跳过本轮，空闲客户端不产生任何请求。
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog

from .cache import MutationCache
from .keys import CacheKey, project_keys

log = structlog.get_logger()

# 默认轮询间隔（秒）
DEFAULT_POLL_INTERVAL_S = 5.0

# 变更后延迟同步的默认时间（秒）
DEFAULT_MUTATION_SYNC_DELAY_S = 0.1


class SyncPoller:
    """单个项目的同步轮询器"""

    def __init__(
        self,
        cache: MutationCache,
        project_id: str,
        interval: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._cache = cache
        self._project_id = project_id
        self._interval = interval
        self._keys = project_keys(project_id)
        self._task: asyncio.Task | None = None
        self._handles: set[asyncio.TimerHandle] = set()
        # 统计：已执行失效的轮次 / 因无消费者跳过的轮次
        self.rounds = 0
        self.skipped = 0

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def keys(self) -> tuple[CacheKey, ...]:
        return self._keys

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """启动轮询循环；已在运行时无副作用"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"sync-poller:{self._project_id}"
        )
        log.debug("sync_poller_started", project_id=self._project_id)

    async def stop(self) -> None:
        """取消轮询循环并等待其退出，同时取消尚未触发的延迟同步"""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log.debug("sync_poller_stopped", project_id=self._project_id)

    async def __aenter__(self) -> "SyncPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def tick(self) -> bool:
        """执行一轮：有活跃消费者时失效整组键

        Returns:
            本轮是否执行了失效
        """
        if not self._cache.has_active(self._keys):
            self.skipped += 1
            log.debug("sync_poll_skipped", project_id=self._project_id)
            return False
        self._cache.invalidate(*self._keys)
        self.rounds += 1
        return True

    def force_sync(self) -> int:
        """立即失效整组键，不检查间隔和消费者"""
        marked = self._cache.invalidate(*self._keys)
        log.debug("sync_forced", project_id=self._project_id, marked=marked)
        return marked

    def invalidate_after_mutation(
        self,
        delay: float = DEFAULT_MUTATION_SYNC_DELAY_S,
    ) -> None:
        """变更结算后延迟 delay 秒强制同步一次"""
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._handles.discard(handle)
            self.force_sync()

        handle = loop.call_later(max(delay, 0.0), _fire)
        self._handles.add(handle)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.tick()
            except Exception:
                # 单轮失败不终止轮询
                log.exception("sync_poll_failed", project_id=self._project_id)


class PollerRegistry:
    """按项目共享 SyncPoller：每个项目最多一个，最后一个观察者释放时停止"""

    def __init__(
        self,
        cache: MutationCache,
        interval: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self._cache = cache
        self._interval = interval
        self._pollers: dict[str, SyncPoller] = {}
        self._observers: dict[str, int] = {}

    def acquire(self, project_id: str) -> SyncPoller:
        """登记一个观察者，返回（必要时创建并启动）该项目的轮询器"""
        poller = self._pollers.get(project_id)
        if poller is None:
            poller = SyncPoller(self._cache, project_id, interval=self._interval)
            self._pollers[project_id] = poller
            self._observers[project_id] = 0
        self._observers[project_id] += 1
        poller.start()
        return poller

    async def release(self, project_id: str) -> None:
        """注销一个观察者；计数归零时停止并移除轮询器"""
        count = self._observers.get(project_id)
        if count is None:
            return
        count -= 1
        if count > 0:
            self._observers[project_id] = count
            return
        del self._observers[project_id]
        poller = self._pollers.pop(project_id)
        await poller.stop()

    def get(self, project_id: str) -> SyncPoller | None:
        return self._pollers.get(project_id)

    def observer_count(self, project_id: str) -> int:
        return self._observers.get(project_id, 0)

    @contextlib.asynccontextmanager
    async def observe(self, project_id: str) -> AsyncIterator[SyncPoller]:
        poller = self.acquire(project_id)
        try:
            yield poller
        finally:
            await self.release(project_id)

    async def close(self) -> None:
        """停止全部轮询器"""
        pollers = list(self._pollers.values())
        self._pollers.clear()
        self._observers.clear()
        for poller in pollers:
            await poller.stop()
