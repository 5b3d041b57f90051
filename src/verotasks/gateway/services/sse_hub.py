"""SSEHub -- 按任务分组的审计记录广播

办公室面板 / TV 看板订阅某个任务后，新写入的审计记录经由队列推送。
消费过慢（队列写满）的订阅者会被摘除，由客户端带 Last-Event-ID 重连补齐。
"""

import asyncio

import structlog

from verotasks.core.models import AuditEntry

log = structlog.get_logger()


class SSEHub:
    def __init__(self, queue_maxsize: int = 100) -> None:
        self._queues: dict[str, set[asyncio.Queue]] = {}
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, task_id: str) -> asyncio.Queue:
        """为任务注册一个新的订阅队列"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._queues.setdefault(task_id, set()).add(queue)
        return queue

    async def unsubscribe(self, task_id: str, queue: asyncio.Queue) -> None:
        self._discard(task_id, queue)

    async def broadcast(self, task_id: str, entry: AuditEntry) -> None:
        """推送审计记录给该任务的全部订阅者"""
        for queue in list(self._queues.get(task_id, ())):
            try:
                queue.put_nowait(entry)
            except asyncio.QueueFull:
                log.warning("sse_subscriber_dropped", task_id=task_id, entry_id=entry.entry_id)
                self._discard(task_id, queue)

    def subscriber_count(self, task_id: str) -> int:
        return len(self._queues.get(task_id, ()))

    def _discard(self, task_id: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(task_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._queues[task_id]
