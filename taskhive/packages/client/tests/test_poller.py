"""SyncPoller / PollerRegistry 单元测试

测试内容：
1. 有活跃消费者时每轮失效整组项目键
2. 无消费者时跳过，空闲客户端不产生任何失效
3. 变更后的延迟强制同步
4. 同一项目共享一个轮询器，最后一个观察者释放时停止
"""

import asyncio

import pytest

from taskhive.client.cache import MutationCache
from taskhive.client.keys import (
    CacheKey,
    ResourceKind,
    members_key,
    project_keys,
    tasks_key,
)
from taskhive.client.poller import PollerRegistry, SyncPoller


def _fill(cache: MutationCache, project_id: str = "P1") -> None:
    for key in project_keys(project_id):
        cache.set(key, [])


class TestSyncPoller:
    def test_rejects_non_positive_interval(self, cache: MutationCache):
        with pytest.raises(ValueError):
            SyncPoller(cache, "P1", interval=0)

    def test_tick_without_consumers_is_noop(self, cache: MutationCache):
        _fill(cache)
        poller = SyncPoller(cache, "P1")
        assert poller.tick() is False
        assert poller.skipped == 1
        assert not any(cache.is_stale(k) for k in project_keys("P1"))

    def test_tick_with_consumer_invalidates_all_project_keys(self, cache: MutationCache):
        _fill(cache)
        _fill(cache, "P2")
        poller = SyncPoller(cache, "P1")
        with cache.subscribe(members_key("P1")):
            assert poller.tick() is True
        assert all(cache.is_stale(k) for k in project_keys("P1"))
        assert not any(cache.is_stale(k) for k in project_keys("P2"))
        assert poller.rounds == 1

    async def test_collaborator_notes_entry_is_refetched(self, cache: MutationCache):
        """协作方自带 loader 的笔记键同样随轮询失效并重新拉取"""
        notes = CacheKey(kind=ResourceKind.NOTES, scope="P1")
        loads: list[int] = []

        async def _load_notes() -> list[dict]:
            loads.append(1)
            return [{"note_id": "N1", "body": "agenda"}]

        await cache.fetch(notes, _load_notes)
        poller = SyncPoller(cache, "P1")
        with cache.subscribe(notes):
            assert poller.tick() is True
            assert cache.is_stale(notes)
            await cache.fetch(notes, _load_notes)
        assert len(loads) == 2

    async def test_loop_runs_on_interval(self, cache: MutationCache):
        _fill(cache)
        cache.subscribe(tasks_key("P1"))
        async with SyncPoller(cache, "P1", interval=0.01) as poller:
            assert poller.running
            await asyncio.sleep(0.05)
        assert not poller.running
        assert poller.rounds >= 2

    async def test_idle_client_is_quiet(self, cache: MutationCache):
        _fill(cache)
        async with SyncPoller(cache, "P1", interval=0.01) as poller:
            await asyncio.sleep(0.05)
        assert poller.rounds == 0
        assert poller.skipped >= 2
        assert not cache.is_stale(tasks_key("P1"))

    async def test_invalidate_after_mutation(self, cache: MutationCache):
        _fill(cache)
        poller = SyncPoller(cache, "P1")
        poller.invalidate_after_mutation(delay=0)
        assert not cache.is_stale(tasks_key("P1"))
        await asyncio.sleep(0.01)
        assert cache.is_stale(tasks_key("P1"))

    async def test_stop_cancels_pending_sync(self, cache: MutationCache):
        _fill(cache)
        poller = SyncPoller(cache, "P1")
        poller.invalidate_after_mutation(delay=0.01)
        await poller.stop()
        await asyncio.sleep(0.02)
        assert not cache.is_stale(tasks_key("P1"))


class TestPollerRegistry:
    async def test_shared_per_project(self, cache: MutationCache):
        registry = PollerRegistry(cache, interval=10)
        first = registry.acquire("P1")
        second = registry.acquire("P1")
        assert first is second
        assert registry.observer_count("P1") == 2

        await registry.release("P1")
        assert first.running
        await registry.release("P1")
        assert not first.running
        assert registry.get("P1") is None

    async def test_release_unknown_project(self, cache: MutationCache):
        registry = PollerRegistry(cache)
        await registry.release("missing")
        assert registry.observer_count("missing") == 0

    async def test_observe_context_manager(self, cache: MutationCache):
        registry = PollerRegistry(cache, interval=10)
        async with registry.observe("P1") as poller:
            assert poller.running
            assert registry.observer_count("P1") == 1
        assert registry.get("P1") is None

    async def test_close_stops_everything(self, cache: MutationCache):
        registry = PollerRegistry(cache, interval=10)
        pollers = [registry.acquire("P1"), registry.acquire("P2")]
        await registry.close()
        assert not any(p.running for p in pollers)
