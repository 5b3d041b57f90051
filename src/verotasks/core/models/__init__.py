"""VeroTasks Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .audit import AuditActor, AuditEntry
from .enums import (
    CRITICAL_SIGNAL_STATES,
    LINKABLE_ROLES,
    ROLE_TARGETS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActorRole,
    AuditAction,
    OfficeSignalState,
    Priority,
    TaskStatus,
    UserRole,
    UserStatus,
    is_closed,
    role_can_target,
    validate_transition,
)
from .payloads import (
    AssignMeta,
    CreateMeta,
    OfficePostMeta,
    OfficeSignalMeta,
    PriorityMeta,
    SignalNotifiedMeta,
    StatusChangeMeta,
    TextMeta,
)
from .task import (
    Assignee,
    ClosedBy,
    CreatedBy,
    OfficeCard,
    OfficeSignal,
    SignalActor,
    Task,
)
from .update import (
    CallbackQuery,
    TelegramChat,
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
)
from .user import ChatBinding, LinkToken, User

__all__ = [
    # 枚举
    "TaskStatus",
    "Priority",
    "OfficeSignalState",
    "ActorRole",
    "AuditAction",
    "UserRole",
    "UserStatus",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "CRITICAL_SIGNAL_STATES",
    "ROLE_TARGETS",
    "LINKABLE_ROLES",
    "validate_transition",
    "role_can_target",
    "is_closed",
    # Task
    "Task",
    "CreatedBy",
    "SignalActor",
    "OfficeSignal",
    "Assignee",
    "ClosedBy",
    "OfficeCard",
    # Audit
    "AuditEntry",
    "AuditActor",
    # User
    "User",
    "ChatBinding",
    "LinkToken",
    # Telegram
    "TelegramUpdate",
    "TelegramMessage",
    "TelegramChat",
    "TelegramUser",
    "CallbackQuery",
    # Payloads
    "CreateMeta",
    "OfficePostMeta",
    "PriorityMeta",
    "AssignMeta",
    "OfficeSignalMeta",
    "SignalNotifiedMeta",
    "StatusChangeMeta",
    "TextMeta",
]
