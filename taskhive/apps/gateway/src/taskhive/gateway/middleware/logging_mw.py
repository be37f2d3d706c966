"""LoggingMiddleware -- 请求级日志

每个请求分配一个 ULID request_id，连同 method / path / 调用者一起绑定到
structlog contextvars；服务层日志因此自动带上请求上下文。
request_id 通过 X-Request-ID 响应头返回给客户端。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

# 健康检查被探针高频调用，只记 debug
_QUIET_PATHS = frozenset({"/health", "/ready"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id, "method": request.method, "path": path}
        if user_id := request.headers.get("X-User-Id", "").strip():
            context["user_id"] = user_id
        structlog.contextvars.bind_contextvars(**context)

        log = structlog.get_logger()
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        if response.status_code >= 500:
            await log.awarning(
                "request_failed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
        elif path in _QUIET_PATHS:
            await log.adebug("request_completed", status_code=response.status_code)
        else:
            await log.ainfo(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response
