"""Notifier Protocol 接口定义

TelegramClient 与 EchoNotifier 都满足此接口。
"""

from typing import Protocol

from .models import InlineKeyboard, SentMessage


class Notifier(Protocol):
    """出站通知通道接口"""

    async def send_message(
        self,
        chat_id: str,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        """发送消息"""
        ...

    async def edit_message_text(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        """编辑已发送消息"""
        ...

    async def answer_callback_query(self, callback_query_id: str, text: str = "") -> None:
        """应答按钮回调"""
        ...

    async def set_webhook(self, url: str, secret_token: str = "") -> bool: ...

    async def delete_webhook(self) -> bool: ...

    async def health_check(self) -> bool: ...

    async def aclose(self) -> None: ...
