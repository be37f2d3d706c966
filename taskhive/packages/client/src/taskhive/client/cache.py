"""MutationCache -- 客户端内存读缓存

- 条目按 CacheKey 索引，保存最近一次确认的服务端值、拉取时间和过期标记
- stale_time 到期或手动 invalidate 后条目变为 stale，下一次 fetch 时惰性重新拉取
- 乐观变更以"层"的形式叠加在确认值之上，按发起顺序应用；
  每层独立提交或丢弃，互不影响
- subscribe 记录活跃消费者，Sync Poller 据此决定是否需要失效

缓存实例由 TaskHiveClient 显式构造，不跨进程共享。
"""

import asyncio
import copy
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from ulid import ULID

from taskhive.core.exceptions import StaleReadFailure

from .keys import CacheKey

log = structlog.get_logger()

# 缓存条目默认过期时间（秒）
DEFAULT_STALE_TIME_S = 120.0

Projection = Callable[[Any], Any]
Merge = Callable[[Any, Any], Any]
InvalidateCallback = Callable[[CacheKey], None]


@dataclass
class _Layer:
    """一次未结算的乐观变更"""

    layer_id: str
    projection: Projection


@dataclass
class _Entry:
    value: Any = None
    has_value: bool = False
    fetched_at: float = 0.0
    stale: bool = False
    stale_time: float = DEFAULT_STALE_TIME_S
    layers: list[_Layer] = field(default_factory=list)


@dataclass(frozen=True)
class EntryState:
    """条目的只读视图"""

    key: CacheKey
    value: Any
    has_value: bool
    stale: bool
    fetched_at: float
    pending_mutations: int


class Subscription:
    """活跃消费者句柄，可作为 (async) context manager 使用"""

    def __init__(
        self,
        cache: "MutationCache",
        key: CacheKey,
        on_invalidate: InvalidateCallback | None,
    ) -> None:
        self._cache = cache
        self.key = key
        self.on_invalidate = on_invalidate
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """释放句柄；重复调用无副作用"""
        if self._released:
            return
        self._released = True
        self._cache._release(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()


class MutationCache:
    """按 CacheKey 索引的内存缓存"""

    def __init__(
        self,
        stale_time: float = DEFAULT_STALE_TIME_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            stale_time: 默认过期时间（秒），0 表示永不自动过期，只能手动失效
            clock: 单调时钟，测试时可注入
        """
        self._stale_time = stale_time
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}
        self._subscriptions: dict[CacheKey, list[Subscription]] = {}
        self._fetch_locks: dict[CacheKey, asyncio.Lock] = {}

    # ---- 读 ----

    def get(self, key: CacheKey, default: Any = None) -> Any:
        """当前可见值（确认值 + 未结算的乐观层），不触发拉取"""
        entry = self._entries.get(key)
        if entry is None or (not entry.has_value and not entry.layers):
            return default
        return self._visible(entry)

    def peek(self, key: CacheKey) -> EntryState | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return EntryState(
            key=key,
            value=self._visible(entry),
            has_value=entry.has_value,
            stale=self._is_stale(entry),
            fetched_at=entry.fetched_at,
            pending_mutations=len(entry.layers),
        )

    def snapshot(self, key: CacheKey) -> Any:
        """当前可见值的深拷贝"""
        return copy.deepcopy(self.get(key))

    def is_stale(self, key: CacheKey) -> bool:
        """条目不存在也视为 stale"""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return True
        return self._is_stale(entry)

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    async def fetch(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[Any]],
        stale_time: float | None = None,
    ) -> Any:
        """读取条目，缺失或过期时调用 loader 重新拉取

        同一 key 的并发 fetch 只触发一次 loader。

        Raises:
            StaleReadFailure: 拉取失败且没有可回退的缓存值
        """
        lock = self._fetch_locks.setdefault(key, asyncio.Lock())
        async with lock:
            if not self.is_stale(key):
                return self.get(key)

            try:
                value = await loader()
            except Exception as e:
                entry = self._entries.get(key)
                if entry is not None and entry.has_value:
                    entry.stale = True
                    log.warning(
                        "cache_refresh_failed",
                        key=str(key),
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    return self._visible(entry)
                raise StaleReadFailure(key.path(), e) from e

            self.set(key, value, stale_time=stale_time)
            return self.get(key)

    # ---- 写 ----

    def set(self, key: CacheKey, value: Any, stale_time: float | None = None) -> None:
        """写入确认值（服务端权威数据），保留未结算的乐观层"""
        entry = self._entries.setdefault(key, _Entry(stale_time=self._stale_time))
        entry.value = value
        entry.has_value = True
        entry.fetched_at = self._clock()
        entry.stale = False
        if stale_time is not None:
            entry.stale_time = stale_time

    def invalidate(self, *keys: CacheKey) -> int:
        """标记条目 stale（不删除值），通知该键的消费者

        Returns:
            被标记的已缓存条目数
        """
        marked = 0
        for key in keys:
            entry = self._entries.get(key)
            if entry is not None and entry.has_value:
                entry.stale = True
                marked += 1
            self._notify_invalidated(key)
        return marked

    def invalidate_scope(self, scope: str) -> int:
        """失效某个 project 作用域下的全部条目"""
        scoped = [key for key in self._entries if key.scope == scope]
        return self.invalidate(*scoped)

    def clear(self) -> None:
        self._entries.clear()

    # ---- 乐观层（由 OptimisticMutator 调用）----

    def push_layer(self, key: CacheKey, projection: Projection) -> str:
        """叠加一层乐观变更并立即生效

        projection 必须是纯函数；先在当前可见值的副本上试算一次，
        抛出的异常直接传给调用方，层不会被加入。

        Returns:
            层 ID，用于之后提交或丢弃
        """
        entry = self._entries.setdefault(key, _Entry(stale_time=self._stale_time))
        projection(copy.deepcopy(self._visible(entry)))
        layer = _Layer(layer_id=str(ULID()), projection=projection)
        entry.layers.append(layer)
        return layer.layer_id

    def commit_layer(
        self,
        key: CacheKey,
        layer_id: str,
        server_value: Any,
        merge: Merge,
    ) -> None:
        """用服务端结果结算一层：确认值 <- merge(该层投影后的确认值, 服务端值)"""
        entry = self._entries.get(key)
        if entry is None:
            return
        layer = self._pop_layer(entry, layer_id)
        if layer is None:
            return
        projected = layer.projection(copy.deepcopy(entry.value))
        entry.value = merge(projected, server_value)
        entry.has_value = True
        entry.fetched_at = self._clock()
        entry.stale = False

    def drop_layer(self, key: CacheKey, layer_id: str) -> bool:
        """丢弃一层（回滚）；其他层与确认值不受影响"""
        entry = self._entries.get(key)
        if entry is None:
            return False
        return self._pop_layer(entry, layer_id) is not None

    def pending_mutations(self, key: CacheKey) -> int:
        entry = self._entries.get(key)
        return len(entry.layers) if entry is not None else 0

    # ---- 活跃消费者 ----

    def subscribe(
        self,
        key: CacheKey,
        on_invalidate: InvalidateCallback | None = None,
    ) -> Subscription:
        """登记一个活跃消费者

        Args:
            on_invalidate: key 被失效时同步回调，消费者可据此重新 fetch
        """
        subscription = Subscription(self, key, on_invalidate)
        self._subscriptions.setdefault(key, []).append(subscription)
        return subscription

    def consumer_count(self, key: CacheKey) -> int:
        return len(self._subscriptions.get(key, ()))

    def is_active(self, key: CacheKey) -> bool:
        return self.consumer_count(key) > 0

    def has_active(self, keys: Iterable[CacheKey]) -> bool:
        return any(self.is_active(key) for key in keys)

    def _release(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.key)
        if not subs:
            return
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.key]

    def _notify_invalidated(self, key: CacheKey) -> None:
        for subscription in list(self._subscriptions.get(key, ())):
            if subscription.on_invalidate is None:
                continue
            try:
                subscription.on_invalidate(key)
            except Exception as e:
                # 消费者回调异常不影响其他消费者和失效本身
                log.warning(
                    "cache_invalidate_callback_failed",
                    key=str(key),
                    error_type=type(e).__name__,
                    error=str(e),
                )

    # ---- 内部 ----

    def _is_stale(self, entry: _Entry) -> bool:
        if entry.stale:
            return True
        if entry.stale_time <= 0:
            return False
        return self._clock() - entry.fetched_at >= entry.stale_time

    @staticmethod
    def _visible(entry: _Entry) -> Any:
        value = entry.value
        for layer in entry.layers:
            value = layer.projection(copy.deepcopy(value))
        return value

    @staticmethod
    def _pop_layer(entry: _Entry, layer_id: str) -> _Layer | None:
        for index, layer in enumerate(entry.layers):
            if layer.layer_id == layer_id:
                return entry.layers.pop(index)
        return None
