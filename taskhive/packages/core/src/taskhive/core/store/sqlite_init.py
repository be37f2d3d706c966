"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# projects 表 DDL（owner 记录在 user_id 列，不写入成员表）
_PROJECTS_DDL = """
CREATE TABLE IF NOT EXISTS projects (
    project_id   TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT NOT NULL DEFAULT '',
    user_id      TEXT NOT NULL,
    created_at   TEXT NOT NULL
);
"""

_PROJECTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_projects_user_id ON projects(user_id);",
]

# project_members 表 DDL
_MEMBERS_DDL = """
CREATE TABLE IF NOT EXISTS project_members (
    project_id  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    role        TEXT NOT NULL DEFAULT 'member',
    joined_at   TEXT NOT NULL,

    PRIMARY KEY (project_id, user_id),
    FOREIGN KEY (project_id) REFERENCES projects(project_id) ON DELETE CASCADE
);
"""

_MEMBERS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_members_user_id ON project_members(user_id);",
]

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id           TEXT PRIMARY KEY,
    project_id        TEXT NOT NULL,
    title             TEXT NOT NULL,
    description       TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL DEFAULT 'todo',
    assigned_to       TEXT,
    importance        TEXT NOT NULL DEFAULT 'medium',
    focus_today       INTEGER NOT NULL DEFAULT 0,
    focus_user_id     TEXT,
    focus_date        TEXT,
    completion_notes  TEXT,
    created_by        TEXT NOT NULL DEFAULT '',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    version           INTEGER NOT NULL DEFAULT 1,

    FOREIGN KEY (project_id) REFERENCES projects(project_id) ON DELETE CASCADE,
    -- focus 三元组要么全空，要么全有值
    CHECK (
        (focus_today = 1 AND focus_user_id IS NOT NULL AND focus_date IS NOT NULL)
        OR (focus_today = 0 AND focus_user_id IS NULL AND focus_date IS NULL)
    )
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_focus ON tasks(focus_date, focus_user_id);",
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id  TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    type             TEXT NOT NULL,
    title            TEXT NOT NULL,
    message          TEXT NOT NULL,
    read             INTEGER NOT NULL DEFAULT 0,
    metadata         TEXT NOT NULL DEFAULT '{}',
    event_id         TEXT,
    created_at       TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);",
    # 同一事件 + 同一收件人 + 同一类型只落一行，重试投递时保持幂等
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_notifications_event_user "
        "ON notifications(event_id, user_id, type) WHERE event_id IS NOT NULL;"
    ),
]

# domain_events outbox 表 DDL
_DOMAIN_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS domain_events (
    event_id       TEXT PRIMARY KEY,
    type           TEXT NOT NULL,
    actor_id       TEXT NOT NULL,
    project_id     TEXT NOT NULL,
    payload        TEXT NOT NULL DEFAULT '{}',
    ts             TEXT NOT NULL,
    fanout_status  TEXT NOT NULL DEFAULT 'pending',
    attempts       INTEGER NOT NULL DEFAULT 0,
    last_error     TEXT NOT NULL DEFAULT ''
);
"""

_DOMAIN_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_domain_events_status ON domain_events(fanout_status, event_id);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_PROJECTS_DDL)
    await conn.execute(_MEMBERS_DDL)
    await conn.execute(_TASKS_DDL)
    await conn.execute(_NOTIFICATIONS_DDL)
    await conn.execute(_DOMAIN_EVENTS_DDL)

    # 创建索引
    for idx_sql in (
        _PROJECTS_INDEXES
        + _MEMBERS_INDEXES
        + _TASKS_INDEXES
        + _NOTIFICATIONS_INDEXES
        + _DOMAIN_EVENTS_INDEXES
    ):
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
