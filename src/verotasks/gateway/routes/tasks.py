"""任务查询路由

GET /api/tasks: 任务列表，支持 bucket（pending / closed / all）与 status 筛选。
GET /api/tasks/{task_id}: 任务详情，含审计记录。
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from verotasks.core.config import TASK_LIST_DEFAULT_LIMIT, TASK_LIST_MAX_LIMIT
from verotasks.core.exceptions import TaskNotFoundError
from verotasks.core.models import Task, TaskStatus

from ..deps import get_task_service

router = APIRouter()


class TaskSummary(BaseModel):
    """任务摘要（列表项）"""

    task_id: str
    created_at: str
    updated_at: str
    title: str
    priority: str
    status: str
    created_by: str
    office_signal: str | None
    assigned_to: str | None


class TaskListResponse(BaseModel):
    tasks: list[TaskSummary]


def _summary(task: Task) -> TaskSummary:
    return TaskSummary(
        task_id=task.task_id,
        created_at=task.created_at.isoformat(),
        updated_at=task.updated_at.isoformat(),
        title=task.title,
        priority=task.priority.value,
        status=task.status.value,
        created_by=task.created_by.name,
        office_signal=task.office_signal.state.value if task.office_signal else None,
        assigned_to=(task.assigned_to.name or task.assigned_to.uid) if task.assigned_to else None,
    )


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    bucket: Literal["pending", "closed", "all"] = Query(default="all", description="任务分组"),
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    limit: int = Query(default=TASK_LIST_DEFAULT_LIMIT, ge=1, le=TASK_LIST_MAX_LIMIT),
    service=Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    tasks = await service.list_tasks(bucket, status, limit)
    return TaskListResponse(tasks=[_summary(t) for t in tasks])


@router.get("/api/tasks/{task_id}")
async def get_task_detail(task_id: str, service=Depends(get_task_service)):
    """查询任务详情，包含完整审计记录"""
    task = await service.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)

    entries = await service.get_audit(task_id)
    return {
        "task": task.model_dump(mode="json"),
        "audit": [e.model_dump(mode="json") for e in entries],
    }
