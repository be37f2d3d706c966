"""Client 包测试 fixtures"""

import pytest

from taskhive.client.cache import MutationCache


class FakeClock:
    """可手动推进的单调时钟"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MutationCache:
    """stale_time 60 秒、使用假时钟的缓存"""
    return MutationCache(stale_time=60.0, clock=clock)


@pytest.fixture
def sample_tasks() -> list[dict]:
    """UI 形状的任务列表"""
    return [
        {
            "task_id": "T1",
            "project_id": "P1",
            "title": "Write launch post",
            "status": "todo",
            "importance": "medium",
            "focus_today": False,
            "focus_user_id": None,
            "focus_date": None,
            "version": 1,
        },
        {
            "task_id": "T2",
            "project_id": "P1",
            "title": "Ship it",
            "status": "in-process",
            "importance": "high",
            "focus_today": False,
            "focus_user_id": None,
            "focus_date": None,
            "version": 3,
        },
    ]
