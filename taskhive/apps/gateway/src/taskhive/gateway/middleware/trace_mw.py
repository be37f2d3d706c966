"""TraceMiddleware -- 为项目/任务请求绑定日志上下文

从路径 /api/projects/{project_id}/... 与 /api/tasks/{task_id}/... 中提取 ID，
绑定到 structlog contextvars，贯穿该请求（及其触发的事件入队）的日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# 路径段 -> 上下文字段名
_PATH_BINDINGS = {
    "projects": "project_id",
    "tasks": "task_id",
    "notifications": "notification_id",
}

# 不是资源 ID 的固定子路由
_RESERVED_SEGMENTS = {"read-all", "members", "tasks", "focus"}


def extract_path_context(path: str) -> dict[str, str]:
    """从请求路径中提取 project_id / task_id / notification_id"""
    parts = [p for p in path.split("/") if p]
    context: dict[str, str] = {}
    for i, part in enumerate(parts[:-1]):
        field = _PATH_BINDINGS.get(part)
        if field is None or field in context:
            continue
        candidate = parts[i + 1]
        if candidate in _RESERVED_SEGMENTS:
            continue
        context[field] = candidate
    return context


class TraceMiddleware(BaseHTTPMiddleware):
    """资源级追踪中间件 -- 绑定 project_id / task_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = extract_path_context(request.url.path)
        user_id = request.headers.get("X-User-Id")
        if user_id:
            context["user_id"] = user_id
        if context:
            structlog.contextvars.bind_contextvars(**context)

        return await call_next(request)
