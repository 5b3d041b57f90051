"""TaskStore SQLite 实现

写入方法不自动提交事务，需由调用方（transaction 模块）管理。
update_task 使用 version 做比较并交换，跨实例并发写入时只有一个成功。
"""

import json
from datetime import datetime

import aiosqlite

from ..exceptions import TaskVersionConflictError
from ..models.task import Assignee, ClosedBy, CreatedBy, OfficeCard, OfficeSignal, Task

_TASK_COLUMNS = (
    "task_id",
    "created_at",
    "updated_at",
    "created_by",
    "source_text",
    "title",
    "priority",
    "status",
    "office_signal",
    "master_comment",
    "master_comment_at",
    "assigned_to",
    "assigned_at",
    "details",
    "details_requested_at",
    "closed_at",
    "closed_by",
    "office_card",
    "version",
)

_SELECT_TASK = f"SELECT {', '.join(_TASK_COLUMNS)} FROM tasks"


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _json(model) -> str | None:
    return model.model_dump_json() if model is not None else None


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        placeholders = ", ".join("?" for _ in _TASK_COLUMNS)
        await self._conn.execute(
            f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) VALUES ({placeholders})",
            self._task_to_row(task),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"{_SELECT_TASK} WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        statuses: list[str] | None = None,
        limit: int = 50,
    ) -> list[Task]:
        """查询任务列表，支持按状态集合筛选，按 created_at 倒序"""
        if statuses:
            placeholders = ", ".join("?" for _ in statuses)
            cursor = await self._conn.execute(
                f"{_SELECT_TASK} WHERE status IN ({placeholders}) "
                "ORDER BY created_at DESC LIMIT ?",
                (*statuses, limit),
            )
        else:
            cursor = await self._conn.execute(
                f"{_SELECT_TASK} ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task(self, task: Task, expected_version: int) -> None:
        """整体写回任务文档（比较并交换 version）

        Raises:
            TaskVersionConflictError: 当前 version 与 expected_version 不一致
        """
        row = self._task_to_row(task)
        assignments = ", ".join(f"{col} = ?" for col in _TASK_COLUMNS[1:])
        cursor = await self._conn.execute(
            f"UPDATE tasks SET {assignments} WHERE task_id = ? AND version = ?",
            (*row[1:], task.task_id, expected_version),
        )
        if cursor.rowcount != 1:
            raise TaskVersionConflictError(task.task_id, expected_version)

    @staticmethod
    def _task_to_row(task: Task) -> tuple:
        return (
            task.task_id,
            task.created_at.isoformat(),
            task.updated_at.isoformat(),
            task.created_by.model_dump_json(),
            task.source_text,
            task.title,
            task.priority.value,
            task.status.value,
            _json(task.office_signal),
            task.master_comment,
            _dt(task.master_comment_at),
            _json(task.assigned_to),
            _dt(task.assigned_at),
            task.details,
            _dt(task.details_requested_at),
            _dt(task.closed_at),
            _json(task.closed_by),
            _json(task.office_card),
            task.version,
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        data = dict(zip(_TASK_COLUMNS, row, strict=True))

        def _load(column: str, model):
            raw = data[column]
            return model(**json.loads(raw)) if raw else None

        def _parse(column: str) -> datetime | None:
            raw = data[column]
            return datetime.fromisoformat(raw) if raw else None

        return Task(
            task_id=data["task_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            created_by=CreatedBy(**json.loads(data["created_by"])),
            source_text=data["source_text"],
            title=data["title"],
            priority=data["priority"],
            status=data["status"],
            office_signal=_load("office_signal", OfficeSignal),
            master_comment=data["master_comment"],
            master_comment_at=_parse("master_comment_at"),
            assigned_to=_load("assigned_to", Assignee),
            assigned_at=_parse("assigned_at"),
            details=data["details"],
            details_requested_at=_parse("details_requested_at"),
            closed_at=_parse("closed_at"),
            closed_by=_load("closed_by", ClosedBy),
            office_card=_load("office_card", OfficeCard),
            version=data["version"],
        )
