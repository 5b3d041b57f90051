"""User / LinkToken Domain Model

用户文档由后台管理端创建，这里只读取并写入 Telegram 绑定信息。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import LINKABLE_ROLES, UserRole, UserStatus


class ChatBinding(BaseModel):
    """Telegram 身份绑定 -- 用户 ID 与 chat ID 同时存在才算已绑定"""

    telegram_user_id: str
    telegram_chat_id: str
    linked_at: datetime


class User(BaseModel):
    """应用用户"""

    uid: str = Field(description="应用用户 ID")
    email: str = Field(default="")
    name: str = Field(default="")
    role: UserRole = Field(default=UserRole.OFFICE)
    status: UserStatus = Field(default=UserStatus.ACTIVE)
    binding: ChatBinding | None = Field(default=None)

    @property
    def is_allowed(self) -> bool:
        """启用状态且角色允许绑定"""
        return self.status == UserStatus.ACTIVE and self.role in LINKABLE_ROLES


class LinkToken(BaseModel):
    """一次性绑定 token"""

    token: str
    uid: str
    email: str
    created_at: datetime
    expires_at: datetime
