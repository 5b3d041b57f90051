"""发送者级限流

同一 Telegram 用户两次建任务之间至少间隔 SENDER_RATE_LIMIT_S 秒。
间隔内的记录存放在共享键值表里，多实例共用同一窗口。
"""

import time
from collections.abc import Callable

import structlog

from verotasks.core.config import SENDER_RATE_LIMIT_S
from verotasks.core.store.protocols import KeyValueStore

log = structlog.get_logger()

_NAMESPACE = "rate"


class SenderThrottle:
    def __init__(
        self,
        kv_store: KeyValueStore,
        interval_s: float = SENDER_RATE_LIMIT_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv_store
        self._interval_s = interval_s
        self._clock = clock

    async def acquire(self, telegram_user_id: str) -> float:
        """占用发送者的本次窗口

        Returns:
            0 表示放行；否则为还需等待的秒数
        """
        now = self._clock()
        key = f"u:{telegram_user_id}"
        if await self._kv.put_if_absent(
            _NAMESPACE, key, {"at": now}, now=now, ttl_s=self._interval_s
        ):
            return 0.0

        held = await self._kv.get(_NAMESPACE, key, now=now)
        # 条目恰好在两次调用之间过期时按最短等待处理
        wait_s = self._interval_s - (now - held["at"]) if held else 0.0
        wait_s = max(wait_s, 0.1)
        log.info("sender_rate_limited", telegram_user_id=telegram_user_id, wait_s=wait_s)
        return wait_s
