"""等待后续消息的单槽协调器

每个 Telegram 用户在每种用途下最多一个待处理任务：
- office_details: 办公室"附带详情完成"，下一条文本即详情
- master_comment: Master"回复"，下一条文本即评论
写入为后写覆盖，取出为原子读删。
"""

import time
from collections.abc import Callable
from enum import StrEnum

from verotasks.core.config import AWAITING_SLOT_TTL_S
from verotasks.core.store.protocols import KeyValueStore


class SlotPurpose(StrEnum):
    OFFICE_DETAILS = "office_details"
    MASTER_COMMENT = "master_comment"


class AwaitingSlots:
    """等待槽"""

    def __init__(
        self,
        kv_store: KeyValueStore,
        ttl_s: int = AWAITING_SLOT_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv_store
        self._ttl_s = ttl_s
        self._clock = clock

    async def set(self, purpose: SlotPurpose, telegram_user_id: str, task_id: str) -> None:
        now = self._clock()
        await self._kv.put(
            f"awaiting:{purpose.value}",
            telegram_user_id,
            {"task_id": task_id, "created_at": now},
            now=now,
            ttl_s=self._ttl_s,
        )

    async def pop(self, purpose: SlotPurpose, telegram_user_id: str) -> str | None:
        """取出并删除槽位，返回 task_id"""
        value = await self._kv.pop(
            f"awaiting:{purpose.value}",
            telegram_user_id,
            now=self._clock(),
        )
        return value["task_id"] if value else None
