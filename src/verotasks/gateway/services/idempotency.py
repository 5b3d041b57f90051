"""Telegram update 幂等守卫

以 update_id 原子插入一条带 TTL 的记录；插入失败说明该 update 已处理过。
"""

import time
from collections.abc import Callable

import structlog

from verotasks.core.config import UPDATE_RECORD_TTL_S
from verotasks.core.store.protocols import KeyValueStore

log = structlog.get_logger()

_NAMESPACE = "telegram_update"


class UpdateGuard:
    """update 去重"""

    def __init__(
        self,
        kv_store: KeyValueStore,
        ttl_s: int = UPDATE_RECORD_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv_store
        self._ttl_s = ttl_s
        self._clock = clock

    async def claim(self, update_id: int) -> bool:
        """声明处理权

        Returns:
            True 表示首次出现，调用方继续处理；False 表示重放
        """
        now = self._clock()
        claimed = await self._kv.put_if_absent(
            _NAMESPACE,
            str(update_id),
            {"received_at": now},
            now=now,
            ttl_s=self._ttl_s,
        )
        if not claimed:
            log.info("update_replay_ignored", update_id=update_id)
        return claimed
