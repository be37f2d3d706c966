"""集成测试共享 fixture -- 客户端 SDK 经 ASGITransport 直连 Gateway app"""

import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport

from taskhive.client import ClientConfig, TaskHiveClient
from taskhive.core.store import create_store_group
from taskhive.gateway.services.notification_dispatcher import NotificationDispatcher


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path):
    """集成测试用 FastAPI app"""
    db_path = str(tmp_path / "test.db")
    os.environ["TASKHIVE_DB_PATH"] = db_path
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from taskhive.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(db_path)
    dispatcher = NotificationDispatcher(store_group)
    dispatcher.start()
    app.state.store_group = store_group
    app.state.dispatcher = dispatcher

    yield app

    await dispatcher.stop()
    await store_group.conn.close()
    os.environ.pop("TASKHIVE_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def session_for(
    integration_app,
) -> AsyncGenerator[Callable[[str], TaskHiveClient], None]:
    """按用户创建客户端会话（每个会话独立缓存），测试结束统一关闭"""
    sessions: list[TaskHiveClient] = []

    def _make(user_id: str) -> TaskHiveClient:
        config = ClientConfig(
            api_base_url="http://test",
            user_id=user_id,
            poll_interval_s=0.05,
            revalidate_delay_s=0.01,
        )
        session = TaskHiveClient(config, transport=ASGITransport(app=integration_app))
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        await session.aclose()
