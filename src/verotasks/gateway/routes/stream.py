"""SSE 审计流路由

GET /api/stream/task/{task_id}: SSE 实时推送指定任务的审计记录。
支持历史记录推送、实时新记录推送、Last-Event-ID 断线重连、心跳保活。
任务可被 Master 重新打开，因此流不会因终态自动结束；follow=false 时推送完历史即关闭。
"""

import asyncio
import json

from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from verotasks.core.config import SSE_HEARTBEAT_INTERVAL
from verotasks.core.exceptions import TaskNotFoundError
from verotasks.core.models import AuditEntry

from ..deps import get_sse_hub, get_store_group

router = APIRouter()


def _entry_to_sse(entry: AuditEntry) -> dict:
    return {
        "id": entry.entry_id,
        "event": entry.action.value,
        "data": json.dumps(entry.model_dump(mode="json"), ensure_ascii=False),
    }


@router.get("/api/stream/task/{task_id}")
async def stream_task_audit(
    task_id: str,
    request: Request,
    follow: bool = Query(default=True, description="推送完历史后是否继续监听"),
    store_group=Depends(get_store_group),
    sse_hub=Depends(get_sse_hub),
):
    """SSE 审计流端点

    1. 先推送历史记录（Last-Event-ID 之后）
    2. 注册到 SSEHub 监听新记录
    3. 心跳保活
    """
    task = await store_group.task_store.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)

    last_event_id = request.headers.get("last-event-id")

    async def event_generator():
        # 先订阅再读历史，避免两者之间的记录丢失
        queue = await sse_hub.subscribe(task_id) if follow else None
        try:
            if last_event_id:
                entries = await store_group.audit_log.get_entries_after(task_id, last_event_id)
            else:
                entries = await store_group.audit_log.get_entries_for_task(task_id)

            seen = set()
            for entry in entries:
                seen.add(entry.entry_id)
                yield _entry_to_sse(entry)

            if queue is None:
                return

            while True:
                try:
                    entry = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_INTERVAL)
                    if entry.entry_id in seen:
                        continue
                    yield _entry_to_sse(entry)
                except TimeoutError:
                    # 心跳保活
                    yield {"comment": "heartbeat"}
        finally:
            if queue is not None:
                await sse_hub.unsubscribe(task_id, queue)

    return EventSourceResponse(event_generator())
