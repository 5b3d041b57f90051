"""VeroTasks Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .audit_log import SqliteAuditLog
from .kv_store import SqliteKeyValueStore
from .protocols import AuditLog, KeyValueStore, LinkTokenStore, TaskStore, UserStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import create_task_with_entries, save_task_with_entries, write_transaction
from .user_store import SqliteLinkTokenStore, SqliteUserStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store: TaskStore = SqliteTaskStore(conn)
        self.audit_log: AuditLog = SqliteAuditLog(conn)
        self.user_store: UserStore = SqliteUserStore(conn)
        self.link_token_store: LinkTokenStore = SqliteLinkTokenStore(conn)
        self.kv_store: KeyValueStore = SqliteKeyValueStore(conn)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径（":memory:" 用于测试）

    Returns:
        StoreGroup 实例
    """
    if db_path != ":memory:":
        # 确保数据库目录存在
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteAuditLog",
    "SqliteUserStore",
    "SqliteLinkTokenStore",
    "SqliteKeyValueStore",
    "init_db",
    "write_transaction",
    "create_task_with_entries",
    "save_task_with_entries",
]
