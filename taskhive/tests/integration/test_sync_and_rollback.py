"""多会话同步 + 乐观回滚 + 重启持久性集成测试"""

import asyncio
import os
from pathlib import Path

import pytest
from httpx import ASGITransport

from taskhive.client import ClientConfig, TaskHiveClient
from taskhive.client.keys import tasks_key
from taskhive.core.exceptions import (
    AuthorizationFailure,
    ValidationFailure,
    VersionConflictFailure,
)
from taskhive.core.store import create_store_group
from taskhive.gateway.services.notification_dispatcher import NotificationDispatcher


class TestMultiSessionSync:
    async def test_observer_sees_other_session_write(self, session_for):
        alice, bob = session_for("alice"), session_for("bob")
        project = await alice.create_project("Launch")
        project_id = project["project_id"]
        await alice.add_member(project_id, "bob")

        assert await bob.get_tasks(project_id) == []
        subscription = bob.cache.subscribe(tasks_key(project_id))
        poller = bob.observe_project(project_id)

        await alice.create_task(project_id, {"title": "From alice"})

        # 下一轮轮询失效后，正常读取路径拉到新数据
        await asyncio.sleep(poller.interval * 3)
        assert poller.rounds >= 1
        tasks = await bob.get_tasks(project_id)
        assert [t["title"] for t in tasks] == ["From alice"]

        subscription.release()
        await bob.release_project(project_id)
        assert not poller.running

    async def test_unobserved_project_stays_cached(self, session_for):
        alice, bob = session_for("alice"), session_for("bob")
        project = await alice.create_project("Launch")
        project_id = project["project_id"]
        await alice.add_member(project_id, "bob")

        await bob.get_tasks(project_id)
        poller = bob.observe_project(project_id)
        await alice.create_task(project_id, {"title": "Unseen"})
        await asyncio.sleep(poller.interval * 3)

        # 没有活跃消费者：轮询跳过，缓存保持原值
        assert poller.rounds == 0
        assert await bob.get_tasks(project_id) == []


class TestServerRejection:
    async def test_rejected_edit_rolls_back(self, session_for):
        alice = session_for("alice")
        project = await alice.create_project("Launch")
        project_id = project["project_id"]
        task = await alice.create_task(project_id, {"title": "Keep me"})
        await alice.get_tasks(project_id)
        before = alice.cache.snapshot(tasks_key(project_id))

        with pytest.raises(ValidationFailure):
            await alice.submit_task_mutation(
                project_id, task["task_id"], {"title": "x" * 500}
            )
        assert alice.cache.get(tasks_key(project_id)) == before

    async def test_outsider_cannot_write(self, session_for):
        alice, mallory = session_for("alice"), session_for("mallory")
        project = await alice.create_project("Launch")
        project_id = project["project_id"]
        task = await alice.create_task(project_id, {"title": "Private"})

        with pytest.raises(AuthorizationFailure):
            await mallory.toggle_focus(project_id, task["task_id"])

    async def test_stale_version_conflicts(self, session_for):
        alice, bob = session_for("alice"), session_for("bob")
        project = await alice.create_project("Launch")
        project_id = project["project_id"]
        await alice.add_member(project_id, "bob")
        task = await alice.create_task(project_id, {"title": "Shared"})

        await bob.get_tasks(project_id)
        await alice.submit_task_mutation(project_id, task["task_id"], {"title": "A"})
        with pytest.raises(VersionConflictFailure) as exc_info:
            await bob.submit_task_mutation(
                project_id,
                task["task_id"],
                {"title": "B"},
                expected_version=task["version"],
            )
        assert exc_info.value.actual == 2
        assert bob.cache.get(tasks_key(project_id))[0]["title"] == "Shared"


class TestDurability:
    async def test_tasks_survive_restart(self, tmp_path: Path):
        """写入 -> 关闭连接 -> 重新打开 -> 数据完整"""
        db_path = str(tmp_path / "durable.db")
        os.environ["TASKHIVE_DB_PATH"] = db_path
        os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

        try:
            from taskhive.gateway.main import create_app

            async def _session(app) -> TaskHiveClient:
                config = ClientConfig(api_base_url="http://test", user_id="alice")
                return TaskHiveClient(config, transport=ASGITransport(app=app))

            # 第一次启动
            app1 = create_app()
            sg1 = await create_store_group(db_path)
            app1.state.store_group = sg1
            app1.state.dispatcher = NotificationDispatcher(sg1)
            async with await _session(app1) as c1:
                project = await c1.create_project("Launch")
                task = await c1.create_task(
                    project["project_id"], {"title": "Durable", "status": "wip"}
                )
            await sg1.conn.close()

            # 第二次启动
            app2 = create_app()
            sg2 = await create_store_group(db_path)
            app2.state.store_group = sg2
            app2.state.dispatcher = NotificationDispatcher(sg2)
            async with await _session(app2) as c2:
                tasks = await c2.get_tasks(project["project_id"])
            await sg2.conn.close()

            assert [t["task_id"] for t in tasks] == [task["task_id"]]
            assert tasks[0]["status"] == "in-process"
            assert tasks[0]["focus_user_id"] == "alice"
        finally:
            os.environ.pop("TASKHIVE_DB_PATH", None)
            os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)
