"""健康检查测试

测试内容：
1. /health 永远 200
2. /ready 报告 SQLite、WAL、Fan-out worker、outbox 积压
3. worker 停止时 /ready 返回 503
"""

from httpx import AsyncClient


class TestHealth:
    async def test_health_always_ok(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_health_needs_no_identity(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code != 401


class TestReady:
    async def test_ready(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        checks = body["checks"]
        assert checks["sqlite"] == "ok"
        assert checks["wal_mode"] == "ok"
        assert checks["fanout_worker"] == "ok"
        assert checks["outbox"] == {"pending": 0, "delivered": 0, "failed": 0}
        assert isinstance(checks["disk_space_mb"], int)

    async def test_outbox_counts(self, client: AsyncClient, make_project, dispatcher):
        await make_project("alice", members=("bob",))
        await dispatcher.drain()

        resp = await client.get("/ready")
        assert resp.json()["checks"]["outbox"]["delivered"] == 1

    async def test_not_ready_when_worker_stopped(self, client: AsyncClient, dispatcher):
        await dispatcher.stop()

        resp = await client.get("/ready")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "not_ready"
        assert body["checks"]["fanout_worker"] == "stopped"
