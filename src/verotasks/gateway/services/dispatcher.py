"""NotificationDispatcher -- 尽力而为的出站通知

任何通知失败都只记录日志并返回失败标记，不会回滚已提交的任务变更。
"""

import structlog

from verotasks.core.models import OfficeCard, Task
from verotasks.notifier import InlineKeyboard, Notifier, NotifierError, SentMessage

from ..config import GatewayConfig
from . import cards

log = structlog.get_logger()


class NotificationDispatcher:
    """按业务场景封装的通知发送"""

    def __init__(self, notifier: Notifier, config: GatewayConfig) -> None:
        self._notifier = notifier
        self._config = config

    async def _send(
        self,
        purpose: str,
        chat_id: str,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage | None:
        if not chat_id:
            log.info("dispatch_skipped", purpose=purpose, reason="no_chat")
            return None
        try:
            return await self._notifier.send_message(chat_id, text, keyboard)
        except NotifierError as e:
            log.warning(
                "dispatch_failed",
                purpose=purpose,
                chat_id=chat_id,
                error=str(e),
                recoverable=e.recoverable,
            )
            return None

    def _office_chat_for(self, task: Task) -> str:
        if task.office_card is not None:
            return task.office_card.chat_id
        return self._config.office_chat_id

    async def post_office_card(self, task: Task) -> OfficeCard | None:
        """发布任务卡片；未配置办公室群时发回创建者所在 chat"""
        chat_id = self._config.office_chat_id or task.created_by.chat_id
        sent = await self._send(
            "office_card",
            chat_id,
            cards.card_text(task),
            cards.office_keyboard(task),
        )
        if sent is None:
            return None
        return OfficeCard(chat_id=sent.chat_id, message_id=sent.message_id)

    async def refresh_card(self, task: Task) -> bool:
        """按任务当前状态重新渲染办公室卡片"""
        card = task.office_card
        if card is None or card.message_id is None:
            return False
        try:
            await self._notifier.edit_message_text(
                card.chat_id,
                card.message_id,
                cards.card_text(task),
                cards.office_keyboard(task),
            )
        except NotifierError as e:
            log.warning(
                "dispatch_failed",
                purpose="card_refresh",
                task_id=task.task_id,
                error=str(e),
                recoverable=e.recoverable,
            )
            return False
        return True

    async def notify_master_signal(self, task: Task) -> bool:
        sent = await self._send(
            "master_signal",
            self._config.master_chat_id,
            cards.master_signal_text(task),
            cards.master_keyboard(task),
        )
        return sent is not None

    async def notify_master_details(self, task: Task) -> bool:
        sent = await self._send(
            "master_details",
            self._config.master_chat_id,
            cards.details_notice_text(task),
            cards.master_keyboard(task),
        )
        return sent is not None

    async def notify_office_decision(self, task: Task) -> bool:
        sent = await self._send(
            "office_decision",
            self._office_chat_for(task),
            cards.decision_notice_text(task),
        )
        return sent is not None

    async def notify_office_comment(self, task: Task) -> bool:
        sent = await self._send(
            "office_comment",
            self._office_chat_for(task),
            cards.master_comment_notice_text(task),
        )
        return sent is not None

    async def notify_requester(self, task: Task) -> bool:
        """通知任务创建者；创建者就在办公室群时不重复发送"""
        chat_id = task.created_by.chat_id
        if chat_id == self._office_chat_for(task):
            return False
        sent = await self._send("requester_notice", chat_id, cards.requester_notice_text(task))
        return sent is not None

    async def reply(self, chat_id: str, text: str) -> bool:
        sent = await self._send("reply", chat_id, text)
        return sent is not None

    async def answer_callback(self, callback_query_id: str, text: str = "") -> bool:
        try:
            await self._notifier.answer_callback_query(callback_query_id, text)
        except NotifierError as e:
            log.warning("dispatch_failed", purpose="callback_answer", error=str(e))
            return False
        return True
