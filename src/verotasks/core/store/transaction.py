"""任务写入 + 审计记录原子事务封装

在同一 SQLite 事务内原子提交任务文档和审计记录：要么都写入，要么都不写入。
同一连接上的写事务通过连接级锁串行化，避免协程交错时提交他人未完成的写入。
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from ..models.audit import AuditEntry
from ..models.task import Task
from .protocols import AuditLog, TaskStore

_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _get_write_lock(conn: aiosqlite.Connection) -> asyncio.Lock:
    lock = _write_locks.get(conn)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[conn] = lock
    return lock


@asynccontextmanager
async def write_transaction(conn: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """写事务上下文：正常退出提交，异常回滚后重新抛出

    不可嵌套使用。
    """
    async with _get_write_lock(conn):
        try:
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise


async def create_task_with_entries(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    audit_log: AuditLog,
    task: Task,
    entries: list[AuditEntry],
) -> None:
    """在同一事务内原子创建任务及其初始审计记录

    Raises:
        Exception: 如果事务提交失败，自动回滚
    """
    async with write_transaction(conn):
        await task_store.create_task(task)
        for entry in entries:
            await audit_log.append(entry)


async def save_task_with_entries(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    audit_log: AuditLog,
    task: Task,
    expected_version: int,
    entries: list[AuditEntry],
) -> None:
    """在同一事务内原子写回任务文档并追加审计记录

    task.version 必须已经是 expected_version + 1。

    Raises:
        TaskVersionConflictError: 其他写者已推进 version，事务回滚
    """
    async with write_transaction(conn):
        await task_store.update_task(task, expected_version)
        for entry in entries:
            await audit_log.append(entry)
