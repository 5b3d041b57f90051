"""按角色校验的任务状态流转"""

from .exceptions import InvalidTransitionError, RoleNotAllowedError
from .models.enums import ActorRole, TaskStatus, role_can_target, validate_transition


def check_transition(
    role: ActorRole,
    from_status: TaskStatus,
    to_status: TaskStatus,
) -> None:
    """校验 role 能否把任务从 from_status 推进到 to_status

    角色权限先于流转表校验：无权角色的请求不论当前状态都被拒绝。

    Raises:
        RoleNotAllowedError: 角色无权进入目标状态
        InvalidTransitionError: 流转表不允许
    """
    if not role_can_target(role, to_status):
        raise RoleNotAllowedError(role.value, to_status.value)
    if not validate_transition(from_status, to_status):
        raise InvalidTransitionError(from_status.value, to_status.value)
