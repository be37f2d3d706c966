"""apps/gateway 测试配置 -- httpx ASGITransport + 临时 SQLite + Fan-out worker"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from taskhive.core.store import create_store_group
from taskhive.gateway.services.notification_dispatcher import NotificationDispatcher

ADMIN_ID = "admin"


def as_user(user_id: str) -> dict[str, str]:
    """构造身份请求头"""
    return {"X-User-Id": user_id}


@pytest_asyncio.fixture
async def gateway_tmp_dir(tmp_path: Path) -> Path:
    """Gateway 临时数据目录"""
    db_dir = tmp_path / "sqlite"
    db_dir.mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest_asyncio.fixture
async def app(gateway_tmp_dir: Path):
    """创建测试用 FastAPI app 实例（手动初始化 app.state，绕过 lifespan）"""
    db_path = str(gateway_tmp_dir / "sqlite" / "test.db")
    os.environ["TASKHIVE_DB_PATH"] = db_path
    os.environ["TASKHIVE_ADMIN_USER_IDS"] = ADMIN_ID
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from taskhive.gateway.main import create_app

    application = create_app()
    store_group = await create_store_group(db_path)
    dispatcher = NotificationDispatcher(store_group)
    dispatcher.start()
    application.state.store_group = store_group
    application.state.dispatcher = dispatcher

    yield application

    await dispatcher.stop()
    await store_group.conn.close()
    for key in ["TASKHIVE_DB_PATH", "TASKHIVE_ADMIN_USER_IDS", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def store_group(app):
    return app.state.store_group


@pytest_asyncio.fixture
async def dispatcher(app) -> NotificationDispatcher:
    return app.state.dispatcher


@pytest_asyncio.fixture
async def make_project(
    client: AsyncClient,
) -> Callable[..., Awaitable[str]]:
    """项目工厂：owner 创建项目并添加成员，返回 project_id"""

    async def _make(owner: str = "alice", members: tuple[str, ...] = ()) -> str:
        resp = await client.post(
            "/api/projects",
            json={"name": "Launch", "description": "Q3 launch"},
            headers=as_user(owner),
        )
        assert resp.status_code == 201
        project_id = resp.json()["project_id"]
        for member in members:
            resp = await client.post(
                f"/api/projects/{project_id}/members",
                json={"user_id": member},
                headers=as_user(owner),
            )
            assert resp.status_code == 201
        return project_id

    return _make
