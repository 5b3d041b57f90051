"""消息文本与内联键盘渲染

所有出站文本为 Telegram HTML 格式，动态内容统一经过 html.escape。
回调数据格式：
    prio:<task_id>:<priority>
    sig:<task_id>:<signal_state>
    details:<task_id>
    mstatus:<task_id>:<status>
    mcomment:<task_id>
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from html import escape

from verotasks.core.models import (
    ROLE_TARGETS,
    ActorRole,
    OfficeSignalState,
    Priority,
    Task,
    TaskStatus,
    is_closed,
)
from verotasks.notifier import InlineButton, InlineKeyboard

PRIORITY_BADGES: dict[Priority, str] = {
    Priority.LOW: "🟢 LOW",
    Priority.MEDIUM: "🟡 MEDIUM",
    Priority.HIGH: "🔴 HIGH",
    Priority.URGENT: "🚨 URGENT",
}

STATUS_BADGES: dict[TaskStatus, str] = {
    TaskStatus.OPEN: "🆕 OPEN",
    TaskStatus.PENDING: "⏳ PENDING",
    TaskStatus.DONE: "✅ DONE",
    TaskStatus.DONE_WITH_DETAILS: "📝 DONE (WITH DETAILS)",
    TaskStatus.FAILED: "🚫 FAILED",
}

SIGNAL_LABELS: dict[OfficeSignalState, str] = {
    OfficeSignalState.IN_PROGRESS: "🛠️ IN PROGRESS",
    OfficeSignalState.NEED_HELP: "🆘 NEED HELP",
    OfficeSignalState.PROBLEM: "🚫 HAS PROBLEMS",
    OfficeSignalState.DONE_SIGNAL: "✅ TASK EXECUTED",
    OfficeSignalState.COMMENT: "💬 COMMENT",
}


class CallbackKind(StrEnum):
    PRIORITY = "prio"
    SIGNAL = "sig"
    DETAILS = "details"
    MASTER_STATUS = "mstatus"
    MASTER_COMMENT = "mcomment"


@dataclass(frozen=True)
class CallbackAction:
    kind: CallbackKind
    task_id: str
    value: str = ""


_VALUED_KINDS: dict[CallbackKind, set[str]] = {
    CallbackKind.PRIORITY: {p.value for p in Priority},
    CallbackKind.SIGNAL: {s.value for s in OfficeSignalState},
    CallbackKind.MASTER_STATUS: {s.value for s in ROLE_TARGETS[ActorRole.MASTER]},
}


def parse_callback_data(data: str) -> CallbackAction | None:
    """解析按钮回调数据，未知格式返回 None"""
    parts = data.split(":")
    try:
        kind = CallbackKind(parts[0])
    except ValueError:
        return None

    if kind in _VALUED_KINDS:
        if len(parts) != 3 or not parts[1] or parts[2] not in _VALUED_KINDS[kind]:
            return None
        return CallbackAction(kind=kind, task_id=parts[1], value=parts[2])

    if len(parts) != 2 or not parts[1]:
        return None
    return CallbackAction(kind=kind, task_id=parts[1])


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "-"


def _button(text: str, *parts: str) -> InlineButton:
    return InlineButton(text=text, callback_data=":".join(parts))


# ============================================================
# 键盘
# ============================================================


def office_keyboard(task: Task) -> InlineKeyboard | None:
    """办公室卡片键盘；已关闭任务不带键盘"""
    if is_closed(task.status):
        return None
    tid = task.task_id
    return InlineKeyboard(
        rows=[
            [
                _button("🟢 Low", CallbackKind.PRIORITY, tid, Priority.LOW),
                _button("🟡 Medium", CallbackKind.PRIORITY, tid, Priority.MEDIUM),
                _button("🔴 High", CallbackKind.PRIORITY, tid, Priority.HIGH),
                _button("🚨 Urgent", CallbackKind.PRIORITY, tid, Priority.URGENT),
            ],
            [
                _button("🛠️ In progress", CallbackKind.SIGNAL, tid, OfficeSignalState.IN_PROGRESS),
                _button("🆘 Need help", CallbackKind.SIGNAL, tid, OfficeSignalState.NEED_HELP),
            ],
            [
                _button("🚫 Problem", CallbackKind.SIGNAL, tid, OfficeSignalState.PROBLEM),
                _button("✅ Executed", CallbackKind.SIGNAL, tid, OfficeSignalState.DONE_SIGNAL),
            ],
            [_button("📝 Finish with details", CallbackKind.DETAILS, tid)],
        ]
    )


def master_keyboard(task: Task) -> InlineKeyboard:
    """Master 决策键盘；已关闭任务提供重新打开"""
    tid = task.task_id
    if is_closed(task.status):
        return InlineKeyboard(
            rows=[
                [
                    _button("🔄 Reopen", CallbackKind.MASTER_STATUS, tid, TaskStatus.OPEN),
                    _button("⏳ Pending", CallbackKind.MASTER_STATUS, tid, TaskStatus.PENDING),
                ],
                [_button("💬 Reply", CallbackKind.MASTER_COMMENT, tid)],
            ]
        )
    return InlineKeyboard(
        rows=[
            [
                _button("✅ Done", CallbackKind.MASTER_STATUS, tid, TaskStatus.DONE),
                _button("⏳ Pending", CallbackKind.MASTER_STATUS, tid, TaskStatus.PENDING),
            ],
            [_button("🚫 Failed", CallbackKind.MASTER_STATUS, tid, TaskStatus.FAILED)],
            [_button("💬 Reply", CallbackKind.MASTER_COMMENT, tid)],
        ]
    )


# ============================================================
# 文本
# ============================================================


def card_text(task: Task) -> str:
    """办公室群任务卡片"""
    lines = [
        f"🧾 <b>Task</b> #<code>{escape(task.task_id)}</code>",
        f"👤 <b>From:</b> {escape(task.created_by.name or '-')}",
        f"🕒 <b>At:</b> {_fmt(task.created_at)}",
        f"⚡ <b>Priority:</b> {PRIORITY_BADGES[task.priority]}",
        f"📌 <b>Status:</b> {STATUS_BADGES[task.status]}",
        "",
        "<b>Message:</b>",
        escape(task.source_text or "-"),
    ]

    if task.assigned_to is not None:
        who = task.assigned_to.name or task.assigned_to.email or task.assigned_to.uid or "-"
        lines += [
            "",
            f"👤 <b>Assigned to:</b> {escape(who)}",
            f"🕒 <b>At:</b> {_fmt(task.assigned_at)}",
        ]

    if task.status == TaskStatus.DONE_WITH_DETAILS and task.details:
        lines += ["", "<b>Details:</b>", escape(task.details)]
    elif task.details_requested_at is not None:
        lines += ["", "📝 <i>Waiting for completion details…</i>"]

    signal = task.office_signal
    if signal is not None:
        lines += [
            "",
            f"<b>Office:</b> {SIGNAL_LABELS[signal.state]}",
            f"<b>At:</b> {_fmt(signal.updated_at)}",
        ]
        if signal.updated_by.email:
            lines.append(f"<b>By:</b> {escape(signal.updated_by.email)}")
        if signal.comment:
            lines += ["<b>Comment:</b>", escape(signal.comment)]

    if task.master_comment:
        lines += [
            "",
            "<b>Master:</b>",
            escape(task.master_comment),
            f"<b>At:</b> {_fmt(task.master_comment_at)}",
        ]

    return "\n".join(lines)


def master_signal_text(task: Task) -> str:
    """通知 Master 的办公室信号消息"""
    signal = task.office_signal
    if signal is None:
        raise ValueError(f"Task {task.task_id} has no office signal")
    lines = [
        "📣 <b>Office signal</b>",
        f"🧾 Task <code>{escape(task.task_id)}</code>",
        f"⚡ Priority: {PRIORITY_BADGES[task.priority]}",
        f"📌 Status: {STATUS_BADGES[task.status]}",
        f"👤 Requested by: {escape(task.created_by.name or '-')}",
        f"✍️ Signalled by: {escape(signal.updated_by.email or signal.updated_by.uid)}",
        "",
        SIGNAL_LABELS[signal.state],
        "",
        "<b>Message:</b>",
        escape(task.source_text or "-"),
    ]
    if signal.comment:
        lines += ["", "<b>Comment:</b>", escape(signal.comment)]
    return "\n".join(lines)


def details_notice_text(task: Task) -> str:
    """通知 Master：办公室已附带详情完成"""
    return "\n".join(
        [
            "📝 <b>Office finished with details</b>",
            f"🧾 Task <code>{escape(task.task_id)}</code>",
            "",
            "<b>Message:</b>",
            escape(task.source_text or "-"),
            "",
            "<b>Details:</b>",
            escape(task.details),
        ]
    )


def decision_notice_text(task: Task) -> str:
    """通知办公室：Master 已决策"""
    return "\n".join(
        [
            "📬 <b>Master decided</b>",
            f"🧾 Task <code>{escape(task.task_id)}</code>",
            f"📌 Status: {STATUS_BADGES[task.status]}",
        ]
    )


def master_comment_notice_text(task: Task) -> str:
    """通知办公室：Master 回复"""
    return "\n".join(
        [
            "💬 <b>Master replied</b>",
            f"🧾 Task <code>{escape(task.task_id)}</code>",
            "",
            escape(task.master_comment),
        ]
    )


def requester_notice_text(task: Task) -> str:
    """通知任务创建者：任务状态更新"""
    return "\n".join(
        [
            f"📣 Your task <code>{escape(task.task_id)}</code> was updated:",
            f"📌 Status: {STATUS_BADGES[task.status]}",
            f"⚡ Priority: {PRIORITY_BADGES[task.priority]}",
        ]
    )


def task_created_text(task: Task) -> str:
    return "\n".join(
        [
            "✅ <b>Task created</b>",
            f"🧾 <code>{escape(task.task_id)}</code>",
            f"⚡ Priority: {PRIORITY_BADGES[task.priority]}",
        ]
    )


HELP_TEXT = "\n".join(
    [
        "👋 <b>VeroTasks</b>",
        "",
        "Send any message to open a task.",
        "Start with <code>/p low|medium|high|urgent</code> to set the priority, e.g.",
        "<code>/p urgent Printer on floor 2 is down</code>",
        "",
        "<b>Commands</b>",
        "/link CODE – link this chat to your account",
        "/id – show this chat's identifiers",
        "/help – this message",
    ]
)

BINDING_FAILURE_TEXTS: dict[str, str] = {
    "not_linked": (
        "🔒 This chat is not linked to a VeroTasks account.\n"
        "Generate a code in the office panel and send <code>/link CODE</code> here."
    ),
    "chat_mismatch": (
        "🔒 Your account is linked to a different chat.\n"
        "Send <code>/link CODE</code> from this chat to move the link here."
    ),
    "not_allowed": "⛔ Your account is disabled or not allowed to use the bot.",
}


def chat_info_text(chat_id: str, chat_type: str, chat_title: str, user_id: str) -> str:
    lines = [
        "🪪 <b>Chat info</b>",
        f"chat id: <code>{escape(chat_id)}</code>",
        f"type: {escape(chat_type or '-')}",
    ]
    if chat_title:
        lines.append(f"title: {escape(chat_title)}")
    lines.append(f"your user id: <code>{escape(user_id)}</code>")
    return "\n".join(lines)


def details_prompt_text(task_id: str) -> str:
    return (
        f"📝 Send the completion details for task <code>{escape(task_id)}</code> "
        "as your next message."
    )


def comment_prompt_text(task_id: str) -> str:
    return f"💬 Send your reply for task <code>{escape(task_id)}</code> as your next message."


def details_saved_text(task: Task) -> str:
    return (
        f"✅ Details saved. Task <code>{escape(task.task_id)}</code> "
        f"is {STATUS_BADGES[task.status]}."
    )


def comment_saved_text(task: Task) -> str:
    return f"✅ Reply saved for task <code>{escape(task.task_id)}</code>."


LINK_SUCCESS_TEXT = "✅ Telegram linked to your VeroTasks account."
LINK_USAGE_TEXT = "Usage: <code>/link CODE</code>"

# 按钮回调应答只支持纯文本
SIGNAL_RESULT_TEXTS: dict[str, str] = {
    "ok": "📣 Master notified",
    "duplicate": "Already recorded",
    "cooldown": "Saved. Master was notified moments ago",
    "awaiting_master_decision": "Saved. Waiting for the master's decision",
    "dispatch_failed": "Saved. Master could not be notified",
}

ERROR_TEXTS: dict[str, str] = {
    "task_not_found": "❌ Task not found.",
    "task_closed": "⚠️ This task is already closed.",
    "invalid_transition": "⚠️ That status change is not allowed.",
    "role_not_allowed": "⛔ You are not allowed to do that.",
    "details_not_requested": "⚠️ This task is not waiting for details.",
    "invalid_input": "❌ Invalid input.",
    "token_not_found": "❌ Invalid or already used code. Generate a new one in the office panel.",
    "token_expired": "⌛ This code has expired. Generate a new one in the office panel.",
    "user_not_allowed": "⛔ Your account is disabled or not allowed to use the bot.",
    "not_authorized": "🔒 This chat is not authorized for that action.",
}


def error_text(code: str) -> str:
    return ERROR_TEXTS.get(code, f"⚠️ Could not complete the action ({code}).")


def rate_limited_text(wait_s: float) -> str:
    return f"⏳ Please wait {math.ceil(wait_s)}s and send again."
