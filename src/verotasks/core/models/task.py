"""Task Domain Model

tasks 表保存任务文档的当前状态；每次变更都伴随一条 audit 记录，
二者在同一事务内提交。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import OfficeSignalState, Priority, TaskStatus


class CreatedBy(BaseModel):
    """任务创建者（Telegram 身份）"""

    user_id: str = Field(description="Telegram 用户 ID")
    chat_id: str = Field(description="创建时所在的 chat ID")
    name: str = Field(default="", description="显示名称")


class SignalActor(BaseModel):
    """办公室信号提交者"""

    uid: str = Field(default="office-web", description="应用用户 ID")
    email: str = Field(default="office-web", description="提交者邮箱")


class OfficeSignal(BaseModel):
    """办公室最近一次提交的信号

    notified_at 仅在通知真正发送成功后写入。
    """

    state: OfficeSignalState
    comment: str = Field(default="")
    updated_at: datetime
    updated_by: SignalActor = Field(default_factory=SignalActor)
    notified_at: datetime | None = Field(default=None, description="最近一次成功通知 Master 的时间")


class Assignee(BaseModel):
    """任务指派对象"""

    uid: str = Field(default="")
    name: str = Field(default="")
    email: str = Field(default="")


class ClosedBy(BaseModel):
    """关闭任务的操作者"""

    user_id: str
    name: str = Field(default="")
    via: str = Field(default="", description="master / office")


class OfficeCard(BaseModel):
    """办公室群中的任务卡片位置"""

    chat_id: str
    message_id: int | None = Field(default=None)


class Task(BaseModel):
    """Task 数据模型

    created_by / source_text 创建后不可变；version 每次写入递增，
    用于跨实例的乐观并发控制。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    created_by: CreatedBy = Field(description="创建者")
    source_text: str = Field(description="原始文本")
    title: str = Field(default="", description="标题（文本摘要）")
    priority: Priority = Field(default=Priority.MEDIUM)
    status: TaskStatus = Field(default=TaskStatus.OPEN)
    office_signal: OfficeSignal | None = Field(default=None)
    master_comment: str = Field(default="")
    master_comment_at: datetime | None = Field(default=None)
    assigned_to: Assignee | None = Field(default=None)
    assigned_at: datetime | None = Field(default=None)
    details: str = Field(default="")
    details_requested_at: datetime | None = Field(
        default=None,
        description="办公室请求附带详情完成、尚未收到详情时的标记",
    )
    closed_at: datetime | None = Field(default=None)
    closed_by: ClosedBy | None = Field(default=None)
    office_card: OfficeCard | None = Field(default=None)
    version: int = Field(default=1, description="乐观并发版本号")
