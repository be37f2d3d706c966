"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + Fan-out worker 启停 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from taskhive.core.config import FANOUT_QUEUE_MAXSIZE, get_db_path
from taskhive.core.store import create_store_group

from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import events, focus, health, notifications, projects, tasks
from .services.notification_dispatcher import NotificationDispatcher

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与 Fan-out worker，关闭时清理"""
    # 启动：初始化 Store
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    # Fan-out worker；补投上次未完成的 pending 事件
    dispatcher = NotificationDispatcher(store_group, queue_maxsize=FANOUT_QUEUE_MAXSIZE)
    app.state.dispatcher = dispatcher
    dispatcher.start()
    await dispatcher.requeue_pending()
    log.info("gateway_started", db_path=db_path)

    yield

    # 关闭：先停 worker 再关连接，未投递事件留在 outbox 中
    await dispatcher.stop()
    await store_group.conn.close()
    log.info(
        "gateway_stopped",
        delivered=dispatcher.delivered_count,
        failed=dispatcher.failed_count,
    )


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="TaskHive Gateway",
        version="0.1.0",
        description="TaskHive 任务同步与通知 Fan-out API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    register_exception_handlers(app)

    # 注册路由
    app.include_router(projects.router, tags=["projects"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(focus.router, tags=["focus"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(events.router, tags=["events"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
