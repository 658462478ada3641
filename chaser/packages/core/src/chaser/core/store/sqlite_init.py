"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL（tasks / chaser_queue / chaser_logs）+ 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
# assignee / calendar 为 JSON 列，局部更新使用 json_set
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id             TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    assignee            TEXT NOT NULL DEFAULT '{}',
    due_date            TEXT NOT NULL,
    priority            TEXT NOT NULL DEFAULT 'medium',
    status              TEXT NOT NULL DEFAULT 'pending',
    total_chasers_sent  INTEGER NOT NULL DEFAULT 0,
    last_chaser_sent_at TEXT,
    calendar            TEXT NOT NULL DEFAULT '{}',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# chaser_queue 表 DDL
_QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS chaser_queue (
    queue_id         TEXT PRIMARY KEY,
    task_id          TEXT NOT NULL,
    scheduled_at     TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'pending',
    recipient_email  TEXT NOT NULL,
    message_subject  TEXT NOT NULL DEFAULT '',
    message_body     TEXT NOT NULL DEFAULT '',
    escalation_tier  INTEGER NOT NULL,
    channels         TEXT NOT NULL DEFAULT '{}',
    attempt_count    INTEGER NOT NULL DEFAULT 0,
    next_attempt_at  TEXT,
    sent_at          TEXT,
    last_attempt_at  TEXT,
    created_at       TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
);
"""

_QUEUE_INDEXES = [
    # 调度器选取: status = pending AND scheduled_at <= now ORDER BY scheduled_at
    "CREATE INDEX IF NOT EXISTS idx_queue_status_scheduled ON chaser_queue(status, scheduled_at);",
    "CREATE INDEX IF NOT EXISTS idx_queue_task_id ON chaser_queue(task_id);",
]

# chaser_logs 表 DDL
# append-only；task_id / queue_id 为软引用，不加外键
_LOGS_DDL = """
CREATE TABLE IF NOT EXISTS chaser_logs (
    log_id           TEXT PRIMARY KEY,
    task_id          TEXT NOT NULL,
    queue_id         TEXT,
    sent_at          TEXT NOT NULL,
    status           TEXT NOT NULL,
    recipient_email  TEXT NOT NULL DEFAULT '',
    message_subject  TEXT NOT NULL DEFAULT '',
    message_body     TEXT NOT NULL DEFAULT '',
    execution_id     TEXT,
    created_at       TEXT NOT NULL
);
"""

_LOGS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_logs_task_sent ON chaser_logs(task_id, sent_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_logs_status_sent ON chaser_logs(status, sent_at);",
    # 每个 QueueEntry 每种结果最多一条日志（回调去重）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_logs_queue_status "
        "ON chaser_logs(queue_id, status) WHERE queue_id IS NOT NULL;"
    ),
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Store 层按列名读取行，这里统一设置 row_factory。

    Args:
        conn: aiosqlite 数据库连接
    """
    conn.row_factory = aiosqlite.Row

    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_QUEUE_DDL)
    await conn.execute(_LOGS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _QUEUE_INDEXES + _LOGS_INDEXES:
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
