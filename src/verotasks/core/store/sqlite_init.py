"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（嵌套结构以 JSON 文本列保存）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id              TEXT PRIMARY KEY,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    created_by           TEXT NOT NULL DEFAULT '{}',
    source_text          TEXT NOT NULL DEFAULT '',
    title                TEXT NOT NULL DEFAULT '',
    priority             TEXT NOT NULL DEFAULT 'medium',
    status               TEXT NOT NULL DEFAULT 'open',
    office_signal        TEXT,
    master_comment       TEXT NOT NULL DEFAULT '',
    master_comment_at    TEXT,
    assigned_to          TEXT,
    assigned_at          TEXT,
    details              TEXT NOT NULL DEFAULT '',
    details_requested_at TEXT,
    closed_at            TEXT,
    closed_by            TEXT,
    office_card          TEXT,
    version              INTEGER NOT NULL DEFAULT 1
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# audit_log 表 DDL（append-only）
_AUDIT_DDL = """
CREATE TABLE IF NOT EXISTS audit_log (
    entry_id      TEXT PRIMARY KEY,
    task_id       TEXT NOT NULL,
    task_seq      INTEGER NOT NULL,
    ts            TEXT NOT NULL,
    action        TEXT NOT NULL,
    actor         TEXT NOT NULL DEFAULT '{}',
    meta          TEXT NOT NULL DEFAULT '{}',
    status_after  TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_AUDIT_INDEXES = [
    # 任务内序号唯一约束（确保 task_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_audit_task_seq ON audit_log(task_id, task_seq);",
]

# users 表 DDL
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    uid               TEXT PRIMARY KEY,
    email             TEXT NOT NULL DEFAULT '',
    name              TEXT NOT NULL DEFAULT '',
    role              TEXT NOT NULL DEFAULT 'office',
    status            TEXT NOT NULL DEFAULT 'active',
    telegram_user_id  TEXT,
    telegram_chat_id  TEXT,
    linked_at         TEXT
);
"""

_USERS_INDEXES = [
    # 一个 Telegram 身份只能绑定一个应用用户
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_telegram_user_id "
        "ON users(telegram_user_id) WHERE telegram_user_id IS NOT NULL;"
    ),
]

# link_tokens 表 DDL
_LINK_TOKENS_DDL = """
CREATE TABLE IF NOT EXISTS link_tokens (
    token       TEXT PRIMARY KEY,
    uid         TEXT NOT NULL,
    email       TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);
"""

# kv_entries 表 DDL（幂等记录、等待槽共用；expires_at 为 epoch 秒）
_KV_DDL = """
CREATE TABLE IF NOT EXISTS kv_entries (
    namespace   TEXT NOT NULL,
    key         TEXT NOT NULL,
    value       TEXT NOT NULL DEFAULT '{}',
    created_at  REAL NOT NULL,
    expires_at  REAL,

    PRIMARY KEY (namespace, key)
);
"""

_KV_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_kv_expires_at ON kv_entries(expires_at);",
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
    for ddl in (_TASKS_DDL, _AUDIT_DDL, _USERS_DDL, _LINK_TOKENS_DDL, _KV_DDL):
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _AUDIT_INDEXES + _USERS_INDEXES + _KV_INDEXES:
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
