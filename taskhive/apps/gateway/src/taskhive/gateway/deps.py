"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / Dispatcher / 当前用户

Store 与 Dispatcher 实例通过 app.state 管理，在 lifespan 中初始化/清理。
身份由上游认证层通过 X-User-Id 头传入。
"""

from fastapi import Header, Request

from taskhive.core.exceptions import AuthorizationFailure
from taskhive.core.store import StoreGroup

from .services.notification_dispatcher import NotificationDispatcher


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """从 app.state 获取 NotificationDispatcher 实例"""
    return request.app.state.dispatcher


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """当前用户 ID；缺失时返回 401"""
    if not x_user_id or not x_user_id.strip():
        raise AuthorizationFailure("Missing X-User-Id header", status_code=401)
    return x_user_id.strip()
