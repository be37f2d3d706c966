"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

from taskhive.core.models import Project, ProjectMember, ProjectParticipants, Task
from taskhive.core.store import StoreGroup


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def core_db(core_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接"""
    from taskhive.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(core_db_path))
    conn.row_factory = aiosqlite.Row
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def core_stores(core_db: aiosqlite.Connection) -> StoreGroup:
    """共享同一连接的 Store 实例组"""
    return StoreGroup(core_db)


@pytest.fixture
def participants() -> ProjectParticipants:
    """owner alice + 成员 bob、carol"""
    now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    project = Project(project_id="P1", name="Launch", user_id="alice", created_at=now)
    return ProjectParticipants(
        project=project,
        members=[
            ProjectMember(project_id="P1", user_id="bob", joined_at=now),
            ProjectMember(project_id="P1", user_id="carol", joined_at=now),
        ],
    )


@pytest.fixture
def make_task():
    """Task 工厂，字段可覆盖"""

    def _make(**overrides) -> Task:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        fields = {
            "task_id": "T1",
            "project_id": "P1",
            "title": "Write launch post",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return Task(**fields)

    return _make
