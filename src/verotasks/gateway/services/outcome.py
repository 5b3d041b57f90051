"""Webhook 单次 update 的处理结果与统一应答决策

每个 update 产生且只产生一个 HandlerOutcome；HTTP 应答码只在 ack_status 中决定。
"""

from dataclasses import dataclass
from enum import StrEnum

# secret 校验失败的原因码（唯一会被拒绝的情况）
BAD_SECRET = "bad_secret"


class OutcomeKind(StrEnum):
    OK = "ok"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


@dataclass(frozen=True)
class HandlerOutcome:
    """处理结果

    ok: 正常处理（含幂等重放）
    recoverable: 用户可自行纠正的失败（未绑定、状态冲突、通知失败等）
    fatal: update 本身无法处理（格式错误、内部错误）
    """

    kind: OutcomeKind
    reason: str = ""

    @classmethod
    def ok(cls, reason: str = "") -> "HandlerOutcome":
        return cls(OutcomeKind.OK, reason)

    @classmethod
    def recoverable(cls, reason: str) -> "HandlerOutcome":
        return cls(OutcomeKind.RECOVERABLE, reason)

    @classmethod
    def fatal(cls, reason: str) -> "HandlerOutcome":
        return cls(OutcomeKind.FATAL, reason)


def ack_status(outcome: HandlerOutcome) -> int:
    """决定 webhook 的 HTTP 应答码

    只有 secret 校验失败返回 401；其余一律 200，避免 Telegram 反复重投。
    """
    if outcome.kind == OutcomeKind.FATAL and outcome.reason == BAD_SECRET:
        return 401
    return 200
