"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、管理员列表、Focus 列表上限、Fan-out 队列容量等可配置常量。
"""

import os
from datetime import UTC, date, datetime
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TASKHIVE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TASKHIVE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "taskhive.db"),
    )


def get_admin_user_ids() -> frozenset[str]:
    """获取管理员用户 ID 集合（逗号分隔，可为空）"""
    raw = os.environ.get("TASKHIVE_ADMIN_USER_IDS", "")
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def utc_today() -> date:
    """当天日期（UTC，天粒度）"""
    return datetime.now(UTC).date()


# 个人 Focus 列表最多返回条数
FOCUS_LIST_LIMIT: int = int(os.environ.get("TASKHIVE_FOCUS_LIST_LIMIT", "12"))

# Fan-out 事件队列容量
FANOUT_QUEUE_MAXSIZE: int = int(
    os.environ.get("TASKHIVE_FANOUT_QUEUE_MAXSIZE", "1000")
)

# 任务标题最大长度
TITLE_MAX_LENGTH: int = 200

# 通知消息中任务标题的预览长度
NOTIFICATION_TITLE_PREVIEW: int = 80
