"""LinkService -- Telegram 身份绑定

1. 办公室面板为 uid+email 签发一次性 token
2. 用户在 Telegram 中发送 /link TOKEN 兑换，chat 信息写入用户文档，token 同时删除
3. 每次角色相关操作前校验发送者已绑定且消息来自绑定的 chat
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import aiosqlite
import structlog

from verotasks.core.config import (
    LINK_TOKEN_ALPHABET,
    LINK_TOKEN_LENGTH,
    LINK_TOKEN_MAX_ATTEMPTS,
    LINK_TOKEN_TTL_MIN,
)
from verotasks.core.exceptions import (
    ConflictError,
    EmailMismatchError,
    TokenExpiredError,
    TokenNotFoundError,
    UserNotAllowedError,
    UserNotFoundError,
    ValidationError,
)
from verotasks.core.models import ChatBinding, LinkToken, User
from verotasks.core.store import StoreGroup, write_transaction

from ..config import GatewayConfig

log = structlog.get_logger()


class BindingFailure(StrEnum):
    """绑定校验失败原因"""

    NOT_LINKED = "not_linked"
    CHAT_MISMATCH = "chat_mismatch"
    NOT_ALLOWED = "not_allowed"


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    user: User | None = None
    failure: BindingFailure | None = None
    privileged: bool = False


def generate_token() -> str:
    return "".join(secrets.choice(LINK_TOKEN_ALPHABET) for _ in range(LINK_TOKEN_LENGTH))


class LinkService:
    """绑定 token 签发 / 兑换与 chat 授权"""

    def __init__(
        self,
        store_group: StoreGroup,
        config: GatewayConfig,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self._stores = store_group
        self._config = config
        self._clock = clock
        self._token_factory = token_factory

    async def issue_token(self, uid: str, email: str) -> LinkToken:
        """签发 token

        Raises:
            ValidationError: uid 或 email 为空
            UserNotFoundError: 用户不存在
            UserNotAllowedError: 用户停用或角色不允许绑定
            EmailMismatchError: email 与用户文档不一致
        """
        uid = uid.strip()
        email = email.strip().lower()
        if not uid or not email:
            raise ValidationError("uid and email are required")

        user = await self._stores.user_store.get_user(uid)
        if user is None:
            raise UserNotFoundError(f"User {uid} does not exist")
        if not user.is_allowed:
            raise UserNotAllowedError(f"User {uid} may not link a chat")
        stored_email = user.email.strip().lower()
        if stored_email and stored_email != email:
            raise EmailMismatchError("Email does not match the user record")

        now = self._clock()
        for attempt in range(1, LINK_TOKEN_MAX_ATTEMPTS + 1):
            token = LinkToken(
                token=self._token_factory(),
                uid=uid,
                email=email,
                created_at=now,
                expires_at=now + timedelta(minutes=LINK_TOKEN_TTL_MIN),
            )
            try:
                async with write_transaction(self._stores.conn):
                    await self._stores.link_token_store.insert_token(token)
            except aiosqlite.IntegrityError:
                log.warning("link_token_collision_retry", attempt=attempt)
                continue
            log.info("link_token_issued", uid=uid, expires_at=token.expires_at.isoformat())
            return token

        raise ConflictError(
            "Could not allocate a unique link token", code="token_generation_failed"
        )

    async def redeem_token(
        self,
        raw_token: str,
        telegram_user_id: str,
        telegram_chat_id: str,
    ) -> User:
        """兑换 token 并写入绑定

        Raises:
            TokenNotFoundError: token 不存在或已被使用
            TokenExpiredError: token 已过期（同时删除）
            UserNotAllowedError: token 所属用户已不存在、停用或角色不允许
        """
        token_text = raw_token.strip().upper()
        if not token_text:
            raise TokenNotFoundError("Link token is empty")

        token = await self._stores.link_token_store.get_token(token_text)
        if token is None:
            raise TokenNotFoundError("Link token does not exist")

        now = self._clock()
        if token.expires_at <= now:
            async with write_transaction(self._stores.conn):
                await self._stores.link_token_store.delete_token(token_text)
            log.info("link_token_expired", uid=token.uid)
            raise TokenExpiredError("Link token has expired")

        user = await self._stores.user_store.get_user(token.uid)
        if user is None or not user.is_allowed:
            raise UserNotAllowedError(f"User {token.uid} may not link a chat")

        binding = ChatBinding(
            telegram_user_id=telegram_user_id,
            telegram_chat_id=telegram_chat_id,
            linked_at=now,
        )
        async with write_transaction(self._stores.conn):
            # 删除成功才算本次兑换有效，并发兑换只有一方成功
            if not await self._stores.link_token_store.delete_token(token_text):
                raise TokenNotFoundError("Link token does not exist")
            await self._stores.user_store.bind_chat(user.uid, binding)

        log.info("chat_linked", uid=user.uid, telegram_user_id=telegram_user_id)
        return user.model_copy(update={"binding": binding})

    async def authorize(self, telegram_user_id: str, chat_id: str) -> AuthResult:
        """校验发送者已绑定且消息来自绑定 chat

        Master chat 与办公室群 chat 免校验。
        """
        if self._config.is_privileged_chat(chat_id):
            user = await self._stores.user_store.find_by_telegram_user_id(telegram_user_id)
            if user is not None and not user.is_allowed:
                # 已停用账号在特权 chat 内只按 chat 身份处理
                log.info("disabled_user_in_privileged_chat", uid=user.uid, chat_id=chat_id)
                user = None
            return AuthResult(ok=True, user=user, privileged=True)

        user = await self._stores.user_store.find_by_telegram_user_id(telegram_user_id)
        if user is None or user.binding is None:
            return AuthResult(ok=False, failure=BindingFailure.NOT_LINKED)
        if not user.is_allowed:
            return AuthResult(ok=False, user=user, failure=BindingFailure.NOT_ALLOWED)
        if user.binding.telegram_chat_id != chat_id:
            return AuthResult(ok=False, user=user, failure=BindingFailure.CHAT_MISMATCH)
        return AuthResult(ok=True, user=user)
