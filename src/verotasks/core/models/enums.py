"""枚举定义

包含 TaskStatus 状态机、Priority、OfficeSignalState、ActorRole、AuditAction、
UserRole/UserStatus 枚举，以及 VALID_TRANSITIONS 合法流转映射、
TERMINAL_STATES 终态集合和按角色划分的流转权限。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    # 活跃状态
    OPEN = "open"
    PENDING = "pending"

    # 终态（Master 仍可重新打开）
    DONE = "done"
    DONE_WITH_DETAILS = "done_with_details"
    FAILED = "failed"


VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.OPEN: {
        TaskStatus.PENDING,
        TaskStatus.DONE,
        TaskStatus.DONE_WITH_DETAILS,
        TaskStatus.FAILED,
    },
    TaskStatus.PENDING: {
        TaskStatus.PENDING,
        TaskStatus.DONE,
        TaskStatus.DONE_WITH_DETAILS,
        TaskStatus.FAILED,
    },
    # 终态仅允许 Master 显式重新决定
    TaskStatus.DONE: {TaskStatus.OPEN, TaskStatus.PENDING, TaskStatus.FAILED},
    TaskStatus.DONE_WITH_DETAILS: {
        TaskStatus.OPEN,
        TaskStatus.PENDING,
        TaskStatus.DONE,
        TaskStatus.FAILED,
    },
    TaskStatus.FAILED: {TaskStatus.OPEN, TaskStatus.PENDING, TaskStatus.DONE},
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.DONE,
    TaskStatus.DONE_WITH_DETAILS,
    TaskStatus.FAILED,
}


class Priority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class OfficeSignalState(StrEnum):
    """办公室信号状态（唯一合法集合，不接受历史别名）"""

    IN_PROGRESS = "in_progress"
    NEED_HELP = "need_help"
    PROBLEM = "problem"
    DONE_SIGNAL = "done_signal"
    COMMENT = "comment"


# 已通知后需等待 Master 决策的关键信号
CRITICAL_SIGNAL_STATES: set[OfficeSignalState] = {
    OfficeSignalState.PROBLEM,
    OfficeSignalState.DONE_SIGNAL,
}


class ActorRole(StrEnum):
    """操作者角色"""

    OFFICE = "office"
    MASTER = "master"
    REQUESTER = "requester"
    SYSTEM = "system"


class AuditAction(StrEnum):
    """审计动作类型"""

    CREATE = "create"
    OFFICE_POST = "office_post"
    PRIORITY = "priority"
    ASSIGN = "assign"
    OFFICE_SIGNAL = "office_signal"
    SIGNAL_NOTIFIED = "signal_notified"
    DETAILS_REQUESTED = "details_requested"
    DETAILS = "details"
    MASTER_STATUS = "master_status"
    MASTER_COMMENT = "master_comment"


class UserRole(StrEnum):
    """应用用户角色"""

    ADMIN = "admin"
    OFFICE = "office"
    MASTER = "master"


class UserStatus(StrEnum):
    """应用用户状态"""

    ACTIVE = "active"
    DISABLED = "disabled"


# 允许绑定 Telegram 的用户角色
LINKABLE_ROLES: set[UserRole] = {UserRole.ADMIN, UserRole.OFFICE, UserRole.MASTER}

# 各角色可主动进入的目标状态
ROLE_TARGETS: dict[ActorRole, set[TaskStatus]] = {
    ActorRole.MASTER: {
        TaskStatus.OPEN,
        TaskStatus.PENDING,
        TaskStatus.DONE,
        TaskStatus.FAILED,
    },
    # 办公室只能通过"附带详情完成"流程结束任务
    ActorRole.OFFICE: {TaskStatus.DONE_WITH_DETAILS},
}


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def role_can_target(role: ActorRole, to_status: TaskStatus) -> bool:
    """判断角色是否有权将任务推进到目标状态"""
    return to_status in ROLE_TARGETS.get(role, set())


def is_closed(status: TaskStatus) -> bool:
    """任务是否处于终态"""
    return status in TERMINAL_STATES
