"""任务 API 测试

测试内容：
1. 创建任务：状态归一化、负责人缺省、进入 active 自动 Focus
2. 按字段更新：expected_version 冲突、完成备注清理、无变化不写库
3. 删除与 404
"""

from httpx import AsyncClient

from taskhive.core.config import utc_today
from taskhive.core.models import FanoutStatus


def headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


async def create_task(client: AsyncClient, project_id: str, user: str = "alice", **fields):
    body = {"title": "Write launch post", **fields}
    resp = await client.post(
        f"/api/projects/{project_id}/tasks", json=body, headers=headers(user)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreateTask:
    async def test_defaults(self, client: AsyncClient, make_project):
        project_id = await make_project("alice", members=("bob",))
        task = await create_task(client, project_id, user="bob")

        assert task["status"] == "todo"
        assert task["ui_status"] == "todo"
        assert task["assigned_to"] == "alice"
        assert task["importance"] == "medium"
        assert task["created_by"] == "bob"
        assert task["version"] == 1
        assert task["focus_today"] is False

    async def test_loose_done_status_is_normalized(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(
            client, project_id, status="Complete", completion_notes="shipped"
        )

        assert task["status"] == "done"
        assert task["ui_status"] == "finished"
        assert task["focus_today"] is False
        assert task["completion_notes"] == "shipped"

    async def test_active_on_create_activates_focus(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(client, project_id, status="In Progress")

        assert task["status"] == "active"
        assert task["ui_status"] == "in-process"
        assert task["focus_today"] is True
        assert task["focus_user_id"] == "alice"
        assert task["focus_date"] == utc_today().isoformat()

    async def test_completion_notes_dropped_unless_done(
        self, client: AsyncClient, make_project
    ):
        project_id = await make_project("alice")
        task = await create_task(client, project_id, completion_notes="early")
        assert task["completion_notes"] is None

    async def test_assignee_must_be_participant(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        resp = await client.post(
            f"/api/projects/{project_id}/tasks",
            json={"title": "x", "assigned_to": "mallory"},
            headers=headers("alice"),
        )
        assert resp.status_code == 422

    async def test_unknown_field_is_422(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        resp = await client.post(
            f"/api/projects/{project_id}/tasks",
            json={"title": "x", "priority": "p0"},
            headers=headers("alice"),
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_FAILED"

    async def test_outsider_cannot_create(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        resp = await client.post(
            f"/api/projects/{project_id}/tasks",
            json={"title": "x"},
            headers=headers("mallory"),
        )
        assert resp.status_code == 403

    async def test_event_written_with_task(self, client: AsyncClient, make_project, store_group, dispatcher):
        project_id = await make_project("alice")
        await create_task(client, project_id)
        await dispatcher.drain()

        counts = await store_group.event_store.count_by_status()
        assert counts[FanoutStatus.DELIVERED] == 1
        assert counts[FanoutStatus.PENDING] == 0


class TestListTasks:
    async def test_list_and_filter(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        first = await create_task(client, project_id, title="one")
        second = await create_task(client, project_id, title="two", status="finished")

        resp = await client.get(f"/api/projects/{project_id}/tasks", headers=headers("alice"))
        assert [t["task_id"] for t in resp.json()["tasks"]] == [
            first["task_id"],
            second["task_id"],
        ]

        resp = await client.get(
            f"/api/projects/{project_id}/tasks",
            params={"status": "done"},
            headers=headers("alice"),
        )
        assert [t["task_id"] for t in resp.json()["tasks"]] == [second["task_id"]]

    async def test_get_task(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(client, project_id)
        resp = await client.get(f"/api/tasks/{task['task_id']}", headers=headers("alice"))
        assert resp.status_code == 200
        assert resp.json() == task

    async def test_get_unknown_task_is_404(self, client: AsyncClient):
        resp = await client.get("/api/tasks/missing", headers=headers("alice"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


class TestUpdateTask:
    async def test_status_change_activates_focus_once(
        self, client: AsyncClient, make_project
    ):
        project_id = await make_project("alice", members=("bob",))
        task = await create_task(client, project_id)
        task_id = task["task_id"]

        resp = await client.patch(
            f"/api/tasks/{task_id}", json={"status": "in-process"}, headers=headers("bob")
        )
        assert resp.status_code == 200
        moved = resp.json()
        assert moved["status"] == "active"
        assert moved["focus_today"] is True
        assert moved["focus_user_id"] == "bob"
        assert moved["version"] == 2

        # 离开 active 不会取消 Focus
        resp = await client.patch(
            f"/api/tasks/{task_id}", json={"status": "todo"}, headers=headers("alice")
        )
        back = resp.json()
        assert back["status"] == "todo"
        assert back["focus_today"] is True
        assert back["focus_user_id"] == "bob"

    async def test_expected_version_conflict(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(client, project_id)
        task_id = task["task_id"]

        resp = await client.patch(
            f"/api/tasks/{task_id}",
            json={"title": "v2", "expected_version": 1},
            headers=headers("alice"),
        )
        assert resp.status_code == 200

        resp = await client.patch(
            f"/api/tasks/{task_id}",
            json={"title": "stale", "expected_version": 1},
            headers=headers("alice"),
        )
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "VERSION_CONFLICT"
        assert error["details"] == {"task_id": task_id, "expected": 1, "actual": 2}

    async def test_last_write_wins_without_version(self, client: AsyncClient, make_project):
        project_id = await make_project("alice", members=("bob",))
        task = await create_task(client, project_id)
        task_id = task["task_id"]

        await client.patch(
            f"/api/tasks/{task_id}", json={"title": "alice"}, headers=headers("alice")
        )
        resp = await client.patch(
            f"/api/tasks/{task_id}", json={"title": "bob"}, headers=headers("bob")
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "bob"
        assert resp.json()["version"] == 3

    async def test_leaving_done_clears_completion_notes(
        self, client: AsyncClient, make_project
    ):
        project_id = await make_project("alice")
        task = await create_task(client, project_id)
        task_id = task["task_id"]

        resp = await client.patch(
            f"/api/tasks/{task_id}",
            json={"status": "finished", "completion_notes": "done!"},
            headers=headers("alice"),
        )
        assert resp.json()["completion_notes"] == "done!"

        resp = await client.patch(
            f"/api/tasks/{task_id}", json={"status": "todo"}, headers=headers("alice")
        )
        assert resp.json()["completion_notes"] is None

    async def test_clearing_assignee_resets_to_owner(
        self, client: AsyncClient, make_project
    ):
        project_id = await make_project("alice", members=("bob",))
        task = await create_task(client, project_id, assigned_to="bob")
        assert task["assigned_to"] == "bob"

        resp = await client.patch(
            f"/api/tasks/{task['task_id']}",
            json={"assigned_to": None},
            headers=headers("alice"),
        )
        assert resp.json()["assigned_to"] == "alice"

    async def test_reassignment_keeps_focus(self, client: AsyncClient, make_project):
        project_id = await make_project("alice", members=("bob",))
        task = await create_task(client, project_id, status="active")
        assert task["focus_user_id"] == "alice"

        resp = await client.patch(
            f"/api/tasks/{task['task_id']}",
            json={"assigned_to": "bob"},
            headers=headers("alice"),
        )
        updated = resp.json()
        assert updated["assigned_to"] == "bob"
        assert updated["focus_today"] is True
        assert updated["focus_user_id"] == "alice"

    async def test_noop_update_keeps_version(
        self, client: AsyncClient, make_project, store_group
    ):
        project_id = await make_project("alice")
        task = await create_task(client, project_id, title="same")

        resp = await client.patch(
            f"/api/tasks/{task['task_id']}",
            json={"title": "same"},
            headers=headers("alice"),
        )
        assert resp.status_code == 200
        assert resp.json()["version"] == 1

        counts = await store_group.event_store.count_by_status()
        assert sum(counts.values()) == 1

    async def test_blank_title_is_422(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(client, project_id)
        resp = await client.patch(
            f"/api/tasks/{task['task_id']}",
            json={"title": "   "},
            headers=headers("alice"),
        )
        assert resp.status_code == 422

    async def test_update_unknown_task_is_404(self, client: AsyncClient):
        resp = await client.patch(
            "/api/tasks/missing", json={"title": "x"}, headers=headers("alice")
        )
        assert resp.status_code == 404


class TestDeleteTask:
    async def test_delete(self, client: AsyncClient, make_project):
        project_id = await make_project("alice")
        task = await create_task(client, project_id)
        task_id = task["task_id"]

        resp = await client.delete(f"/api/tasks/{task_id}", headers=headers("alice"))
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "task_id": task_id}

        resp = await client.get(f"/api/tasks/{task_id}", headers=headers("alice"))
        assert resp.status_code == 404

        resp = await client.delete(f"/api/tasks/{task_id}", headers=headers("alice"))
        assert resp.status_code == 404
