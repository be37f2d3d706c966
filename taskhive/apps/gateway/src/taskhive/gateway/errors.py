"""错误响应 -- 领域失败统一转换为 {"error": {"code", "message"}} JSON

服务层只抛出 taskhive.core.exceptions 中的失败类型，
由此处注册的异常处理器转换为 HTTP 响应。
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from taskhive.core.exceptions import (
    NotFoundFailure,
    TaskHiveError,
    VersionConflictFailure,
)

log = structlog.get_logger()


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _details_for(exc: TaskHiveError) -> dict[str, Any] | None:
    if isinstance(exc, NotFoundFailure):
        return {"resource": exc.resource, "resource_id": exc.resource_id}
    if isinstance(exc, VersionConflictFailure):
        return {
            "task_id": exc.task_id,
            "expected": exc.expected,
            "actual": exc.actual,
        }
    return None


async def handle_taskhive_error(request: Request, exc: TaskHiveError) -> JSONResponse:
    """领域失败 -> JSON 错误响应"""
    await log.ainfo(
        "request_failed",
        code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return error_response(exc.status_code, exc.code, exc.message, _details_for(exc))


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求体/参数校验失败 -> 422"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return error_response(422, "VALIDATION_FAILED", message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskHiveError, handle_taskhive_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
