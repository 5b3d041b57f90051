"""AuditEntry Domain Model

审计表 append-only，不允许更新或删除。
entry_id 使用 ULID 格式，时间有序。
task_seq 同一 task 内严格单调递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActorRole, AuditAction, TaskStatus


class AuditActor(BaseModel):
    """审计操作者"""

    user_id: str = Field(description="操作者 ID（Telegram 用户 ID 或应用 uid）")
    name: str = Field(default="", description="显示名称")
    role: ActorRole = Field(default=ActorRole.SYSTEM)


class AuditEntry(BaseModel):
    """AuditEntry 数据模型

    记录一次任务变更：谁、做了什么、变更后的状态。
    """

    entry_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    task_id: str = Field(description="关联的 Task ID")
    task_seq: int = Field(description="任务内序号，严格单调递增")
    ts: datetime = Field(description="记录时间戳")
    action: AuditAction = Field(description="动作类型")
    actor: AuditActor = Field(description="操作者")
    meta: dict[str, Any] = Field(default_factory=dict, description="结构化 meta")
    status_after: TaskStatus = Field(description="变更后的任务状态")
