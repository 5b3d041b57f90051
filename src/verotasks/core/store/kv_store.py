"""带 TTL 的键值存储 SQLite 实现

update 幂等记录、等待槽与发送者限流共用。与其他 Store 不同，这里每个方法都是独立的
原子操作并自行提交事务；过期条目在读取时视为不存在。
"""

import json
from typing import Any

import aiosqlite

from .transaction import write_transaction


class SqliteKeyValueStore:
    """KeyValueStore 的 SQLite 实现（时间参数均为 epoch 秒）"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def put_if_absent(
        self,
        namespace: str,
        key: str,
        value: dict[str, Any],
        now: float,
        ttl_s: float | None = None,
    ) -> bool:
        """仅当键不存在（或已过期）时写入

        Returns:
            True 表示本次写入成功（首个声明者）
        """
        async with write_transaction(self._conn):
            await self._conn.execute(
                """
                DELETE FROM kv_entries
                WHERE namespace = ? AND key = ?
                  AND expires_at IS NOT NULL AND expires_at <= ?
                """,
                (namespace, key, now),
            )
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO kv_entries (namespace, key, value, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    namespace,
                    key,
                    json.dumps(value, ensure_ascii=False),
                    now,
                    now + ttl_s if ttl_s is not None else None,
                ),
            )
            return cursor.rowcount == 1

    async def put(
        self,
        namespace: str,
        key: str,
        value: dict[str, Any],
        now: float,
        ttl_s: float | None = None,
    ) -> None:
        """写入或覆盖"""
        async with write_transaction(self._conn):
            await self._conn.execute(
                """
                INSERT INTO kv_entries (namespace, key, value, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value = excluded.value,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at
                """,
                (
                    namespace,
                    key,
                    json.dumps(value, ensure_ascii=False),
                    now,
                    now + ttl_s if ttl_s is not None else None,
                ),
            )

    async def get(self, namespace: str, key: str, now: float) -> dict[str, Any] | None:
        cursor = await self._conn.execute(
            "SELECT value, expires_at FROM kv_entries WHERE namespace = ? AND key = ?",
            (namespace, key),
        )
        row = await cursor.fetchone()
        if row is None or (row[1] is not None and row[1] <= now):
            return None
        return json.loads(row[0])

    async def pop(self, namespace: str, key: str, now: float) -> dict[str, Any] | None:
        """原子读取并删除

        并发调用时只有一个调用方能拿到值；已过期的条目同样被删除但返回 None。
        """
        async with write_transaction(self._conn):
            cursor = await self._conn.execute(
                """
                DELETE FROM kv_entries WHERE namespace = ? AND key = ?
                RETURNING value, expires_at
                """,
                (namespace, key),
            )
            row = await cursor.fetchone()
            await cursor.close()
        if row is None or (row[1] is not None and row[1] <= now):
            return None
        return json.loads(row[0])

    async def purge_expired(self, now: float) -> int:
        """清理所有过期条目，返回删除行数"""
        async with write_transaction(self._conn):
            cursor = await self._conn.execute(
                "DELETE FROM kv_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )
            return cursor.rowcount
