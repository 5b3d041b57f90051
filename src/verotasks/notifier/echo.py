"""EchoNotifier -- 本地开发 / 测试用的内存通知通道

不访问网络，把所有出站调用记录在内存中，接口与 TelegramClient 一致。
"""

import itertools

from .exceptions import NotifierError
from .models import InlineKeyboard, SentMessage


class EchoNotifier:
    """记录型通知通道

    Attributes:
        sent: 已发送消息（按顺序）
        edits: 已编辑消息（按顺序）
        answered: 已应答的回调 (callback_query_id, text)
        fail_with: 设置后所有调用抛出该异常，用于模拟通道故障
    """

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.edits: list[SentMessage] = []
        self.answered: list[tuple[str, str]] = []
        self.webhook_url: str = ""
        self.fail_with: NotifierError | None = None
        self._message_ids = itertools.count(1)

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def send_message(
        self,
        chat_id: str,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        self._check()
        message = SentMessage(
            chat_id=str(chat_id),
            message_id=next(self._message_ids),
            text=text,
            keyboard=keyboard,
        )
        self.sent.append(message)
        return message

    async def edit_message_text(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        self._check()
        message = SentMessage(
            chat_id=str(chat_id),
            message_id=message_id,
            text=text,
            keyboard=keyboard,
        )
        self.edits.append(message)
        return message

    async def answer_callback_query(self, callback_query_id: str, text: str = "") -> None:
        self._check()
        self.answered.append((callback_query_id, text))

    async def set_webhook(self, url: str, secret_token: str = "") -> bool:
        self._check()
        self.webhook_url = url
        return True

    async def delete_webhook(self) -> bool:
        self._check()
        self.webhook_url = ""
        return True

    async def health_check(self) -> bool:
        return self.fail_with is None

    async def aclose(self) -> None:
        return None

    def sent_to(self, chat_id: str) -> list[SentMessage]:
        """发往指定 chat 的消息"""
        return [m for m in self.sent if m.chat_id == str(chat_id)]
