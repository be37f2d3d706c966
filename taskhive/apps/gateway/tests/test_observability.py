"""可观测性测试

测试内容：
1. HTTP 请求含 X-Request-ID 响应头
2. TraceMiddleware 从路径提取 project_id / task_id
3. structlog 配置与 Logfire 降级
"""

import logging

import structlog
from httpx import AsyncClient

from taskhive.gateway.middleware.logging_config import setup_logfire, setup_logging
from taskhive.gateway.middleware.trace_mw import extract_path_context


class TestRequestId:
    async def test_request_id_in_response_header(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert "x-request-id" in resp.headers
        # ULID 格式：26 字符
        assert len(resp.headers["x-request-id"]) == 26

    async def test_request_ids_are_unique(self, client: AsyncClient):
        ids = set()
        for _ in range(3):
            resp = await client.get("/health")
            ids.add(resp.headers["x-request-id"])
        assert len(ids) == 3

    async def test_error_responses_carry_request_id(self, client: AsyncClient):
        resp = await client.get("/api/projects/nope", headers={"X-User-Id": "alice"})
        assert resp.status_code == 404
        assert len(resp.headers["x-request-id"]) == 26


class TestPathContext:
    def test_project_path(self):
        assert extract_path_context("/api/projects/P1/tasks") == {"project_id": "P1"}

    def test_task_path(self):
        assert extract_path_context("/api/tasks/T1/focus") == {"task_id": "T1"}

    def test_notification_path(self):
        assert extract_path_context("/api/notifications/N1/read") == {
            "notification_id": "N1"
        }

    def test_reserved_segments_skipped(self):
        assert extract_path_context("/api/notifications/read-all") == {}
        assert extract_path_context("/api/projects") == {}

    def test_member_path(self):
        assert extract_path_context("/api/projects/P1/members/bob") == {"project_id": "P1"}


class TestLoggingConfig:
    def test_json_mode(self):
        setup_logging(log_format="json", log_level="debug")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("TASKHIVE_LOG_LEVEL", "warning")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING
        setup_logging(log_level="INFO")

    def test_logfire_disabled_by_default(self, app, monkeypatch):
        monkeypatch.delenv("LOGFIRE_SEND_TO_LOGFIRE", raising=False)
        assert setup_logfire(app) is False
