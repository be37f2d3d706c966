"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 环境变量控制，false 时降级为纯本地日志。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 第三方库日志默认只保留 WARNING 以上，避免每条 SQL / 请求刷屏
_NOISY_LOGGERS = ("aiosqlite", "httpx", "httpcore", "uvicorn.access")


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
) -> None:
    """初始化 structlog 配置

    Args:
        log_format: "json" 或 "dev"，缺省读取 TASKHIVE_LOG_FORMAT（默认 dev）
        log_level: 日志级别，缺省读取 TASKHIVE_LOG_LEVEL（默认 INFO）
    """
    log_format = log_format or os.environ.get("TASKHIVE_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("TASKHIVE_LOG_LEVEL", "INFO")

    # 基础处理器链
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        # 生产模式：JSON 输出，异常栈转为结构化字段
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        # 开发模式：pretty print
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 配置标准库 logging
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> bool:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE 环境变量控制：
    - "true": 启用 Logfire APM（需要 LOGFIRE_TOKEN）
    - "false" (默认): 降级为纯本地日志

    Returns:
        是否成功启用
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="taskhive-gateway")
        logfire.instrument_fastapi(app)
    except Exception as e:
        # Logfire 初始化失败不影响系统运行
        structlog.get_logger().warning(
            "logfire_init_failed",
            message="Logfire 初始化失败，降级为纯本地日志",
            error=str(e),
        )
        return False
    return True
