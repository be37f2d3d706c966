"""OptimisticMutator -- 乐观变更 + 回滚

perform_mutation 流程：
1. 在目标缓存条目上叠加一层乐观投影（条目下方的确认值即变更前快照）
2. 发送写请求；瞬时网络失败自动重试一次，鉴权/校验类失败不重试
3. 成功：服务端返回值合并到该层投影之上，成为新的确认值
4. 失败：只丢弃该层，确认值与其他层保持不变，异常原样抛出
5. 无论成败，延迟一小段时间后失效 key 及其依赖键，触发重新拉取
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import structlog

from taskhive.core.exceptions import TransientNetworkFailure

from .cache import Merge, MutationCache, Projection
from .keys import CacheKey

log = structlog.get_logger()

# 变更结算后延迟失效的默认时间（秒）
DEFAULT_REVALIDATE_DELAY_S = 0.1

# 列表元素的身份字段，按优先级匹配
_IDENTITY_FIELDS = ("task_id", "notification_id", "user_id", "project_id", "id")


def _identity(item: Any) -> tuple[str, Any] | None:
    if not isinstance(item, dict):
        return None
    for name in _IDENTITY_FIELDS:
        if item.get(name) is not None:
            return name, item[name]
    return None


def merge_server_result(projected: Any, server: Any) -> Any:
    """默认合并策略：服务端返回的每个字段都覆盖乐观值

    - server 为 None：保留乐观投影（写接口无返回体）
    - dict + dict：字段级覆盖
    - list + 带身份字段的 dict：替换列表中同一身份的元素，找不到则追加
    - 其他情况：服务端值整体替换
    """
    if server is None:
        return projected
    if isinstance(projected, dict) and isinstance(server, dict):
        return {**projected, **server}
    if isinstance(projected, list) and isinstance(server, dict):
        ident = _identity(server)
        if ident is None:
            return server
        name, value = ident
        merged = []
        replaced = False
        for item in projected:
            if isinstance(item, dict) and item.get(name) == value:
                merged.append({**item, **server})
                replaced = True
            else:
                merged.append(item)
        if not replaced:
            merged.append(server)
        return merged
    return server


def keep_projection(projected: Any, server: Any) -> Any:
    """忽略服务端返回体，保留乐观投影（用于删除类变更）"""
    return projected


class OptimisticMutator:
    """在 MutationCache 上执行乐观变更"""

    def __init__(
        self,
        cache: MutationCache,
        revalidate_delay: float = DEFAULT_REVALIDATE_DELAY_S,
        max_transient_retries: int = 1,
    ) -> None:
        self._cache = cache
        self._revalidate_delay = revalidate_delay
        self._max_transient_retries = max_transient_retries
        self._pending_revalidations: set[asyncio.TimerHandle] = set()

    @property
    def cache(self) -> MutationCache:
        return self._cache

    async def perform_mutation(
        self,
        key: CacheKey,
        projection: Projection,
        server_call: Callable[[], Awaitable[Any]],
        dependent_keys: Iterable[CacheKey] = (),
        merge: Merge | None = None,
    ) -> Any:
        """执行一次乐观变更

        Args:
            key: 被乐观修改的缓存键
            projection: 纯函数 old -> new，立即作用于缓存
            server_call: 实际写请求，返回服务端权威结果
            dependent_keys: 结算后需要一并失效的缓存键
            merge: (乐观投影, 服务端结果) -> 新确认值，默认 merge_server_result

        Returns:
            server_call 的返回值

        Raises:
            server_call 抛出的异常（乐观层已回滚）
        """
        layer_id = self._cache.push_layer(key, projection)
        dependents = tuple(dependent_keys)
        settled = False
        try:
            result = await self._call_with_retry(key, server_call)
            self._cache.commit_layer(key, layer_id, result, merge or merge_server_result)
            settled = True
            log.debug("optimistic_mutation_committed", key=str(key))
            return result
        except Exception as e:
            log.info(
                "optimistic_mutation_rolled_back",
                key=str(key),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        finally:
            if not settled:
                self._cache.drop_layer(key, layer_id)
            self.schedule_revalidation(key, *dependents)

    async def _call_with_retry(
        self,
        key: CacheKey,
        server_call: Callable[[], Awaitable[Any]],
    ) -> Any:
        attempt = 0
        while True:
            try:
                return await server_call()
            except TransientNetworkFailure as e:
                if attempt >= self._max_transient_retries:
                    raise
                attempt += 1
                log.warning(
                    "optimistic_mutation_retry",
                    key=str(key),
                    attempt=attempt,
                    error=str(e),
                )

    def schedule_revalidation(
        self,
        *keys: CacheKey,
        delay: float | None = None,
    ) -> None:
        """延迟失效一组缓存键（0 表示下一轮事件循环）"""
        if not keys:
            return
        loop = asyncio.get_running_loop()
        wait = self._revalidate_delay if delay is None else delay

        def _fire() -> None:
            self._pending_revalidations.discard(handle)
            self._cache.invalidate(*keys)

        handle = loop.call_later(max(wait, 0.0), _fire)
        self._pending_revalidations.add(handle)

    @property
    def pending_revalidations(self) -> int:
        return len(self._pending_revalidations)

    def close(self) -> None:
        """取消尚未触发的延迟失效"""
        for handle in self._pending_revalidations:
            handle.cancel()
        self._pending_revalidations.clear()
