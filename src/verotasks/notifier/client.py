"""TelegramClient -- Telegram Bot API 调用封装

所有出站调用共用一个 httpx.AsyncClient，超时由配置决定；超时与连接错误
统一包装为 DispatchUnreachableError，API 返回 ok=false 包装为 DispatchRejectedError。
"""

import time
from typing import Any

import httpx
import structlog

from .exceptions import DispatchRejectedError, DispatchUnreachableError
from .models import InlineKeyboard, SentMessage

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 编辑内容未变化时 Bot API 返回的描述
_NOT_MODIFIED = "message is not modified"


class TelegramClient:
    """Telegram Bot API 客户端"""

    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_s: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """初始化客户端

        Args:
            bot_token: Bot token（只出现在请求 URL 中，不写入日志）
            api_base_url: Bot API 基础 URL
            timeout_s: 请求超时（秒）
            transport: 自定义 httpx transport（测试注入 MockTransport）
        """
        self._api_base_url = api_base_url.rstrip("/")
        self._bot_token = bot_token
        self._timeout_s = timeout_s
        self._http = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        timeout_s: float | None = None,
    ) -> Any:
        """调用 Bot API 方法并返回 result 字段

        Raises:
            DispatchUnreachableError: 连接失败或超时
            DispatchRejectedError: API 返回 ok=false
        """
        url = f"{self._api_base_url}/bot{self._bot_token}/{method}"
        start_time = time.monotonic()

        try:
            resp = await self._http.post(
                url,
                json=payload,
                timeout=timeout_s if timeout_s is not None else self._timeout_s,
            )
        except httpx.HTTPError as e:
            log.warning(
                "telegram_call_unreachable",
                method=method,
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            raise DispatchUnreachableError(self._api_base_url, e) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if not isinstance(body, dict) or not body.get("ok"):
            body = body if isinstance(body, dict) else {}
            raise DispatchRejectedError(
                method=method,
                error_code=int(body.get("error_code", resp.status_code)),
                description=str(body.get("description", resp.reason_phrase)),
            )

        log.debug(
            "telegram_call_completed",
            method=method,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return body.get("result")

    async def send_message(
        self,
        chat_id: str,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        """发送 HTML 格式消息"""
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if keyboard is not None:
            payload["reply_markup"] = keyboard.to_reply_markup()

        result = await self._call("sendMessage", payload)
        return SentMessage(
            chat_id=str(chat_id),
            message_id=int(result["message_id"]),
            text=text,
            keyboard=keyboard,
        )

    async def edit_message_text(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        keyboard: InlineKeyboard | None = None,
    ) -> SentMessage:
        """编辑已发送消息；keyboard 为 None 时移除内联键盘

        内容未变化视为成功。
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if keyboard is not None:
            payload["reply_markup"] = keyboard.to_reply_markup()

        try:
            await self._call("editMessageText", payload)
        except DispatchRejectedError as e:
            if _NOT_MODIFIED not in e.description:
                raise
        return SentMessage(
            chat_id=str(chat_id),
            message_id=message_id,
            text=text,
            keyboard=keyboard,
        )

    async def answer_callback_query(self, callback_query_id: str, text: str = "") -> None:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def set_webhook(self, url: str, secret_token: str = "") -> bool:
        """注册 webhook 地址"""
        payload: dict[str, Any] = {
            "url": url,
            "allowed_updates": ["message", "edited_message", "callback_query"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._call("setWebhook", payload))

    async def delete_webhook(self) -> bool:
        return bool(await self._call("deleteWebhook", {"drop_pending_updates": False}))

    async def health_check(self) -> bool:
        """通过 getMe 检查 Bot API 可达性

        Returns:
            True 如果 token 有效且 API 可达，否则 False

        注意: 此方法不抛出异常，超时设置为 5 秒（硬编码）。
        """
        try:
            await self._call("getMe", {}, timeout_s=HEALTH_CHECK_TIMEOUT_S)
            return True
        except (DispatchUnreachableError, DispatchRejectedError) as e:
            log.debug("health_check_failed", error=str(e))
            return False
