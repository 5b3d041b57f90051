"""AuditEntry meta 子类型

所有审计动作的结构化 meta 定义。
"""

from pydantic import BaseModel, Field

from .enums import OfficeSignalState, Priority, TaskStatus


class CreateMeta(BaseModel):
    """create 动作 meta"""

    priority: Priority
    text_length: int


class OfficePostMeta(BaseModel):
    """office_post 动作 meta"""

    chat_id: str
    message_id: int


class PriorityMeta(BaseModel):
    """priority 动作 meta"""

    from_priority: Priority
    to_priority: Priority


class AssignMeta(BaseModel):
    """assign 动作 meta"""

    uid: str
    name: str = Field(default="")


class OfficeSignalMeta(BaseModel):
    """office_signal 动作 meta"""

    state: OfficeSignalState
    has_comment: bool
    notify: bool
    reason: str


class SignalNotifiedMeta(BaseModel):
    """signal_notified 动作 meta"""

    state: OfficeSignalState


class StatusChangeMeta(BaseModel):
    """master_status / details 动作 meta"""

    from_status: TaskStatus
    to_status: TaskStatus
    reason: str = Field(default="")


class TextMeta(BaseModel):
    """master_comment / details_requested 动作 meta"""

    length: int = Field(default=0, description="文本长度")
