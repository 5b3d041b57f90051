"""数据模型 -- 内联键盘 + 已发送消息"""

from typing import Any

from pydantic import BaseModel, Field


class InlineButton(BaseModel):
    """内联键盘按钮"""

    text: str = Field(description="按钮文字")
    callback_data: str = Field(description="回调数据（Telegram 限制 64 字节）")


class InlineKeyboard(BaseModel):
    """内联键盘，按行组织"""

    rows: list[list[InlineButton]] = Field(default_factory=list)

    def to_reply_markup(self) -> dict[str, Any]:
        """转为 Bot API 的 reply_markup 结构"""
        return {
            "inline_keyboard": [
                [button.model_dump() for button in row] for row in self.rows
            ]
        }

    def callback_data(self) -> list[str]:
        """全部按钮的回调数据（按顺序）"""
        return [button.callback_data for row in self.rows for button in row]


class SentMessage(BaseModel):
    """一次发送或编辑的结果记录"""

    chat_id: str = Field(description="目标 chat ID")
    message_id: int = Field(description="消息 ID")
    text: str = Field(default="")
    keyboard: InlineKeyboard | None = Field(default=None)
