"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、Fan-out worker、
         outbox 积压与磁盘空间。
"""

import shutil
from pathlib import Path

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from taskhive.core.config import get_db_path
from taskhive.core.models import FanoutStatus
from taskhive.core.store import verify_wal_mode

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: 是否运行在 WAL 模式
    3. fanout_worker: 后台投递 worker 是否存活
    4. outbox: 各投递状态的事件数（failed 积压不影响就绪）
    5. disk_space_mb: 磁盘剩余空间
    """
    checks: dict = {}
    all_ok = True
    store_group = getattr(request.app.state, "store_group", None)

    # 1. SQLite 连通性检查
    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    # 2. WAL 模式
    if checks["sqlite"] == "ok":
        checks["wal_mode"] = "ok" if await verify_wal_mode(store_group.conn) else "off"

    # 3. Fan-out worker
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is not None and dispatcher.running:
        checks["fanout_worker"] = "ok"
    else:
        checks["fanout_worker"] = "stopped"
        all_ok = False

    # 4. outbox 积压
    if checks["sqlite"] == "ok":
        try:
            counts = await store_group.event_store.count_by_status()
            checks["outbox"] = {status.value: counts.get(status, 0) for status in FanoutStatus}
        except Exception as e:
            log.warning("outbox_count_failed", error=str(e))
            checks["outbox"] = f"error: {str(e)}"

    # 5. 数据库所在磁盘的剩余空间
    try:
        disk_usage = shutil.disk_usage(Path(get_db_path()).parent)
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except Exception:
        checks["disk_space_mb"] = 0
        all_ok = False

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={"status": status_text, "checks": checks},
    )
