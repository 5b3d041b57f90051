"""Telegram Update 入站模型

只声明业务用到的字段，其余字段忽略。
"""

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    """消息发送者"""

    model_config = ConfigDict(extra="ignore")

    id: int
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    username: str = Field(default="")

    @property
    def display_name(self) -> str:
        """姓名 > 用户名 > ID"""
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or self.username or str(self.id)


class TelegramChat(BaseModel):
    """消息所在 chat"""

    model_config = ConfigDict(extra="ignore")

    id: int
    type: str = Field(default="")
    title: str = Field(default="")


class TelegramMessage(BaseModel):
    """入站消息"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    chat: TelegramChat
    from_: TelegramUser | None = Field(default=None, alias="from")
    text: str = Field(default="")


class CallbackQuery(BaseModel):
    """内联键盘按钮回调"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_: TelegramUser = Field(alias="from")
    data: str = Field(default="")
    message: TelegramMessage | None = Field(default=None)


class TelegramUpdate(BaseModel):
    """Telegram webhook 推送的 Update"""

    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: TelegramMessage | None = Field(default=None)
    edited_message: TelegramMessage | None = Field(default=None)
    callback_query: CallbackQuery | None = Field(default=None)
