"""TaskStore / AuditLog / 事务封装测试"""

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
from ulid import ULID

from verotasks.core.exceptions import TaskVersionConflictError
from verotasks.core.models import (
    ActorRole,
    AuditAction,
    AuditActor,
    AuditEntry,
    CreatedBy,
    OfficeSignal,
    OfficeSignalState,
    Priority,
    Task,
    TaskStatus,
)
from verotasks.core.store import (
    StoreGroup,
    create_task_with_entries,
    save_task_with_entries,
)
from verotasks.core.store.sqlite_init import verify_wal_mode

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _task(task_id: str | None = None, created_at: datetime = NOW, **kwargs) -> Task:
    return Task(
        task_id=task_id or str(ULID()),
        created_at=created_at,
        updated_at=created_at,
        created_by=CreatedBy(user_id="42", chat_id="42", name="Ana"),
        source_text="Printer is jammed",
        title="Printer is jammed",
        **kwargs,
    )


def _entry(task_id: str, seq: int, status: TaskStatus = TaskStatus.OPEN) -> AuditEntry:
    return AuditEntry(
        entry_id=str(ULID()),
        task_id=task_id,
        task_seq=seq,
        ts=NOW,
        action=AuditAction.CREATE if seq == 1 else AuditAction.PRIORITY,
        actor=AuditActor(user_id="42", name="Ana", role=ActorRole.REQUESTER),
        meta={"seq": seq},
        status_after=status,
    )


async def _create(store_group: StoreGroup, task: Task) -> None:
    await create_task_with_entries(
        store_group.conn,
        store_group.task_store,
        store_group.audit_log,
        task,
        [_entry(task.task_id, 1)],
    )


class TestTaskStore:
    async def test_wal_mode(self, store_group: StoreGroup):
        assert await verify_wal_mode(store_group.conn)

    async def test_create_and_get_roundtrip_nested_fields(self, store_group: StoreGroup):
        task = _task(
            priority=Priority.HIGH,
            office_signal=OfficeSignal(
                state=OfficeSignalState.NEED_HELP,
                comment="toner",
                updated_at=NOW,
            ),
        )
        await _create(store_group, task)

        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.model_dump() == task.model_dump()

    async def test_get_missing_returns_none(self, store_group: StoreGroup):
        assert await store_group.task_store.get_task("missing") is None

    async def test_list_filters_and_orders(self, store_group: StoreGroup):
        old = _task(created_at=NOW)
        new = _task(created_at=NOW + timedelta(minutes=5))
        closed = _task(created_at=NOW + timedelta(minutes=1), status=TaskStatus.DONE)
        for t in (old, new, closed):
            await _create(store_group, t)

        all_tasks = await store_group.task_store.list_tasks()
        assert [t.task_id for t in all_tasks] == [new.task_id, closed.task_id, old.task_id]

        open_tasks = await store_group.task_store.list_tasks(["open", "pending"])
        assert {t.task_id for t in open_tasks} == {old.task_id, new.task_id}

        limited = await store_group.task_store.list_tasks(limit=1)
        assert [t.task_id for t in limited] == [new.task_id]

    async def test_save_bumps_version(self, store_group: StoreGroup):
        task = _task()
        await _create(store_group, task)

        updated = task.model_copy(update={"priority": Priority.URGENT, "version": 2})
        await save_task_with_entries(
            store_group.conn,
            store_group.task_store,
            store_group.audit_log,
            updated,
            1,
            [_entry(task.task_id, 2)],
        )

        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.priority == Priority.URGENT
        assert loaded.version == 2

    async def test_stale_version_conflicts_and_rolls_back(self, store_group: StoreGroup):
        task = _task()
        await _create(store_group, task)

        stale = task.model_copy(update={"priority": Priority.LOW, "version": 2})
        await save_task_with_entries(
            store_group.conn,
            store_group.task_store,
            store_group.audit_log,
            stale,
            1,
            [_entry(task.task_id, 2)],
        )

        with pytest.raises(TaskVersionConflictError):
            await save_task_with_entries(
                store_group.conn,
                store_group.task_store,
                store_group.audit_log,
                task.model_copy(update={"priority": Priority.HIGH, "version": 2}),
                1,
                [_entry(task.task_id, 3)],
            )

        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.priority == Priority.LOW
        entries = await store_group.audit_log.get_entries_for_task(task.task_id)
        assert [e.task_seq for e in entries] == [1, 2]


class TestAuditLog:
    async def test_duplicate_task_seq_rolls_back_task_write(self, store_group: StoreGroup):
        task = _task()
        await _create(store_group, task)

        with pytest.raises(aiosqlite.IntegrityError):
            await save_task_with_entries(
                store_group.conn,
                store_group.task_store,
                store_group.audit_log,
                task.model_copy(update={"status": TaskStatus.DONE, "version": 2}),
                1,
                [_entry(task.task_id, 1)],
            )

        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.status == TaskStatus.OPEN
        assert loaded.version == 1

    async def test_next_seq_and_entries_after(self, store_group: StoreGroup):
        task = _task()
        await _create(store_group, task)
        assert await store_group.audit_log.get_next_task_seq(task.task_id) == 2

        second = _entry(task.task_id, 2)
        third = _entry(task.task_id, 3)
        await save_task_with_entries(
            store_group.conn,
            store_group.task_store,
            store_group.audit_log,
            task.model_copy(update={"version": 2}),
            1,
            [second, third],
        )

        after = await store_group.audit_log.get_entries_after(task.task_id, second.entry_id)
        assert [e.entry_id for e in after] == [third.entry_id]

        replay = await store_group.audit_log.get_entries_after(task.task_id, "unknown")
        assert [e.task_seq for e in replay] == [1, 2, 3]
        assert replay[0].actor.role == ActorRole.REQUESTER
        assert replay[0].meta == {"seq": 1}

    async def test_next_seq_for_unknown_task(self, store_group: StoreGroup):
        assert await store_group.audit_log.get_next_task_seq("nope") == 1
