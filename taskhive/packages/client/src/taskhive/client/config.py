"""ClientConfig -- 客户端 SDK 配置加载

从环境变量加载配置；数值解析失败时记录警告并回退默认值，不阻塞启动。
"""

import math
import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class ClientConfig(BaseModel):
    """客户端 SDK 配置 -- 从环境变量加载

    环境变量:
        TASKHIVE_API_URL: Gateway 地址（默认 http://localhost:8000）
        TASKHIVE_USER_ID: 当前用户 ID（通过 X-User-Id 头传递）
        TASKHIVE_POLL_INTERVAL_S: 同步轮询间隔（秒，默认 5）
        TASKHIVE_STALE_TIME_S: 缓存过期时间（秒，默认 120，0 表示只手动失效）
        TASKHIVE_HTTP_TIMEOUT_S: HTTP 请求超时（秒，默认 10）
    """

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Gateway 基础 URL",
    )
    user_id: str = Field(default="", description="当前用户 ID")
    poll_interval_s: float = Field(
        default=5.0,
        gt=0,
        description="Sync Poller 轮询间隔（秒）",
    )
    stale_time_s: float = Field(
        default=120.0,
        ge=0,
        description="缓存条目过期时间（秒），0 表示永不自动过期",
    )
    timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="HTTP 请求超时（秒）",
    )
    revalidate_delay_s: float = Field(
        default=0.1,
        ge=0,
        description="变更结算后延迟失效的时间（秒）",
    )


# 数值型环境变量 -> (字段名, 默认值, 是否允许 0)
_FLOAT_ENV_VARS: dict[str, tuple[str, float, bool]] = {
    "TASKHIVE_POLL_INTERVAL_S": ("poll_interval_s", 5.0, False),
    "TASKHIVE_STALE_TIME_S": ("stale_time_s", 120.0, True),
    "TASKHIVE_HTTP_TIMEOUT_S": ("timeout_s", 10.0, False),
}


def load_client_config() -> ClientConfig:
    """从环境变量加载客户端配置

    环境变量映射:
        TASKHIVE_API_URL -> api_base_url (默认 "http://localhost:8000")
        TASKHIVE_USER_ID -> user_id (默认 "")
        TASKHIVE_POLL_INTERVAL_S -> poll_interval_s (默认 5)
        TASKHIVE_STALE_TIME_S -> stale_time_s (默认 120)
        TASKHIVE_HTTP_TIMEOUT_S -> timeout_s (默认 10)

    Returns:
        ClientConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TASKHIVE_API_URL"):
        kwargs["api_base_url"] = val.rstrip("/")

    if val := os.environ.get("TASKHIVE_USER_ID"):
        kwargs["user_id"] = val

    for env_var, (field_name, fallback, allow_zero) in _FLOAT_ENV_VARS.items():
        if val := os.environ.get(env_var):
            try:
                parsed = float(val)
            except ValueError:
                parsed = -1.0
            if (
                not math.isfinite(parsed)
                or parsed < 0
                or (parsed == 0 and not allow_zero)
            ):
                log.warning(
                    "invalid_client_config",
                    env_var=env_var,
                    value=val,
                    fallback=fallback,
                )
                # 使用默认值，不阻塞启动
                continue
            kwargs[field_name] = parsed

    return ClientConfig(**kwargs)
