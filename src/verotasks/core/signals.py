"""办公室信号防刷决策

纯函数：给定当前信号、新信号、任务状态与当前时间，决定是否写入、是否通知 Master。
判定顺序固定，先命中者生效：重复 → 冷却 → 等待 Master 决策 → 通知。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from .models.enums import CRITICAL_SIGNAL_STATES, OfficeSignalState, TaskStatus, is_closed
from .models.task import OfficeSignal


class SignalReason(StrEnum):
    """决策原因"""

    OK = "ok"
    DUPLICATE = "duplicate"
    COOLDOWN = "cooldown"
    AWAITING_MASTER_DECISION = "awaiting_master_decision"


@dataclass(frozen=True)
class SignalDecision:
    persist: bool
    notify: bool
    reason: SignalReason


def decide_signal(
    current: OfficeSignal | None,
    state: OfficeSignalState,
    comment: str,
    task_status: TaskStatus,
    now: datetime,
    cooldown_s: int,
) -> SignalDecision:
    """决定新信号的处理方式

    Args:
        current: 任务上现有的信号（可能为 None）
        state: 新信号状态
        comment: 新信号评论（已去除首尾空白）
        task_status: 任务当前状态
        now: 当前时间
        cooldown_s: 通知冷却窗口（秒）

    Returns:
        SignalDecision
    """
    if current is None:
        return SignalDecision(persist=True, notify=True, reason=SignalReason.OK)

    if current.state == state and current.comment == comment:
        return SignalDecision(persist=False, notify=False, reason=SignalReason.DUPLICATE)

    last_notified = current.notified_at
    if last_notified is not None and now - last_notified < timedelta(seconds=cooldown_s):
        return SignalDecision(persist=True, notify=False, reason=SignalReason.COOLDOWN)

    if (
        current.state in CRITICAL_SIGNAL_STATES
        and last_notified is not None
        and not is_closed(task_status)
    ):
        return SignalDecision(
            persist=True,
            notify=False,
            reason=SignalReason.AWAITING_MASTER_DECISION,
        )

    return SignalDecision(persist=True, notify=True, reason=SignalReason.OK)
