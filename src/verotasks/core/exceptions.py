"""领域异常体系

每个异常携带稳定的机器可读 code，路由层据此映射 HTTP 状态码。
"""


class VeroTasksError(Exception):
    """领域基础异常"""

    code: str = "error"

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code


class ValidationError(VeroTasksError):
    """输入不合法"""

    code = "invalid_input"


class NotFoundError(VeroTasksError):
    """资源不存在"""

    code = "not_found"


class ConflictError(VeroTasksError):
    """状态冲突"""

    code = "conflict"


class UnauthorizedError(VeroTasksError):
    """未认证：secret 不匹配或 chat 未绑定"""

    code = "unauthorized"


class ForbiddenError(VeroTasksError):
    """已识别身份但无权执行"""

    code = "forbidden"


class TaskNotFoundError(NotFoundError):
    code = "task_not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class TaskClosedError(ConflictError):
    code = "task_closed"

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task {task_id} is already closed: {status}")
        self.task_id = task_id
        self.status = status


class TaskVersionConflictError(ConflictError):
    """乐观并发冲突：写入时 version 已被其他写者推进"""

    code = "task_version_conflict"

    def __init__(self, task_id: str, expected_version: int) -> None:
        super().__init__(
            f"Task {task_id} changed concurrently (expected version {expected_version})"
        )
        self.task_id = task_id
        self.expected_version = expected_version


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class RoleNotAllowedError(ForbiddenError):
    code = "role_not_allowed"

    def __init__(self, role: str, to_status: str) -> None:
        super().__init__(f"Role {role} may not move a task to {to_status}")
        self.role = role
        self.to_status = to_status


class UserNotFoundError(NotFoundError):
    code = "user_not_found"


class UserNotAllowedError(ForbiddenError):
    code = "user_not_allowed"


class EmailMismatchError(ForbiddenError):
    code = "email_mismatch"


class TokenNotFoundError(NotFoundError):
    code = "token_not_found"


class TokenExpiredError(ConflictError):
    code = "token_expired"


class ServerMisconfiguredError(VeroTasksError):
    """必需的 secret 未配置"""

    code = "server_misconfigured"
