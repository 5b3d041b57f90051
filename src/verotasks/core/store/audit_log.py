"""AuditLog SQLite 实现

审计表 append-only：只允许插入，不允许更新或删除。
task_seq 同一 task 内严格单调递增。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.audit import AuditActor, AuditEntry
from ..models.enums import AuditAction, TaskStatus

_SELECT_ENTRY = (
    "SELECT entry_id, task_id, task_seq, ts, action, actor, meta, status_after "
    "FROM audit_log"
)


class SqliteAuditLog:
    """AuditLog 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append(self, entry: AuditEntry) -> None:
        """追加审计记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO audit_log (entry_id, task_id, task_seq, ts, action,
                                   actor, meta, status_after)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.task_id,
                entry.task_seq,
                entry.ts.isoformat(),
                entry.action.value,
                entry.actor.model_dump_json(),
                json.dumps(entry.meta, ensure_ascii=False),
                entry.status_after.value,
            ),
        )

    async def get_entries_for_task(self, task_id: str) -> list[AuditEntry]:
        """查询指定任务的所有审计记录，按 task_seq 正序"""
        cursor = await self._conn.execute(
            f"{_SELECT_ENTRY} WHERE task_id = ? ORDER BY task_seq ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def get_entries_after(
        self,
        task_id: str,
        after_entry_id: str,
    ) -> list[AuditEntry]:
        """查询指定记录之后的增量记录（用于 SSE 断线重连）

        以 after_entry_id 对应的 task_seq 为界；未知 ID 视为从头回放。
        """
        cursor = await self._conn.execute(
            f"""
            {_SELECT_ENTRY}
            WHERE task_id = ? AND task_seq > COALESCE(
                (SELECT task_seq FROM audit_log WHERE task_id = ? AND entry_id = ?),
                0
            )
            ORDER BY task_seq ASC
            """,
            (task_id, task_id, after_entry_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）

        在事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) FROM audit_log WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> AuditEntry:
        """将数据库行转换为 AuditEntry 模型"""
        return AuditEntry(
            entry_id=row[0],
            task_id=row[1],
            task_seq=row[2],
            ts=datetime.fromisoformat(row[3]),
            action=AuditAction(row[4]),
            actor=AuditActor(**json.loads(row[5])),
            meta=json.loads(row[6]) if row[6] else {},
            status_after=TaskStatus(row[7]),
        )
