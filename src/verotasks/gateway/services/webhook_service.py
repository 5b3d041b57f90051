"""WebhookService -- Telegram update 处理

每个 update 依次经过：解析 → 幂等守卫 → 命令 / 绑定校验 → 等待槽 → 任务变更，
最终产出且只产出一个 HandlerOutcome。应答码由 outcome.ack_status 统一决定。
"""

import hmac
import re
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from verotasks.core.exceptions import ForbiddenError, TaskNotFoundError, VeroTasksError
from verotasks.core.models import (
    ActorRole,
    AuditActor,
    CallbackQuery,
    CreatedBy,
    OfficeSignalState,
    Priority,
    SignalActor,
    TaskStatus,
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
    User,
    UserRole,
)
from verotasks.notifier import NotifierError

from ..config import GatewayConfig
from . import cards
from .awaiting import AwaitingSlots, SlotPurpose
from .cards import CallbackAction, CallbackKind, parse_callback_data
from .dispatcher import NotificationDispatcher
from .idempotency import UpdateGuard
from .link_service import AuthResult, LinkService
from .outcome import BAD_SECRET, HandlerOutcome
from .task_service import TaskService
from .throttle import SenderThrottle

log = structlog.get_logger()

_COMMAND_RE = re.compile(r"^/([A-Za-z_]+)(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)

# 以这些前缀开头的消息是带优先级的新任务，不是命令
_PRIORITY_PREFIXES = {"p", "priority", "prioridade"}


def parse_command(text: str) -> tuple[str, str] | None:
    """解析 `/command@bot arg`，返回 (小写命令名, 参数)；非命令返回 None"""
    match = _COMMAND_RE.match(text.strip())
    if match is None:
        return None
    return match.group(1).lower(), (match.group(2) or "").strip()


class WebhookService:
    """Telegram update 处理器"""

    def __init__(
        self,
        config: GatewayConfig,
        task_service: TaskService,
        link_service: LinkService,
        dispatcher: NotificationDispatcher,
        update_guard: UpdateGuard,
        slots: AwaitingSlots,
        throttle: SenderThrottle | None = None,
    ) -> None:
        self._config = config
        self._tasks = task_service
        self._links = link_service
        self._dispatcher = dispatcher
        self._guard = update_guard
        self._slots = slots
        self._throttle = throttle

    def check_secret(self, provided: str | None) -> bool:
        """校验 webhook secret 请求头；未配置 secret 时放行"""
        expected = self._config.webhook_secret.get_secret_value()
        if not expected:
            return True
        return hmac.compare_digest((provided or "").encode(), expected.encode())

    async def handle(self, payload: Any, secret: str | None = None) -> HandlerOutcome:
        """处理一个 update 并返回唯一的处理结果"""
        if not self.check_secret(secret):
            log.warning("webhook_bad_secret")
            return HandlerOutcome.fatal(BAD_SECRET)

        try:
            update = TelegramUpdate.model_validate(payload)
        except PydanticValidationError as e:
            log.warning("webhook_invalid_update", errors=e.error_count())
            return HandlerOutcome.fatal("invalid_update")

        structlog.contextvars.bind_contextvars(update_id=update.update_id)
        try:
            if not await self._guard.claim(update.update_id):
                return HandlerOutcome.ok("duplicate_update")

            if update.message is not None:
                outcome = await self._handle_message(update.message)
            elif update.callback_query is not None:
                outcome = await self._handle_callback(update.callback_query)
            else:
                outcome = HandlerOutcome.ok("ignored")
        except NotifierError as e:
            log.warning("webhook_dispatch_failed", error=str(e))
            outcome = HandlerOutcome.recoverable("dispatch_failed")
        except Exception as e:
            log.error("webhook_handler_error", error=str(e), exc_info=True)
            outcome = HandlerOutcome.fatal("internal_error")
        finally:
            structlog.contextvars.unbind_contextvars("update_id")

        log.info(
            "webhook_update_handled",
            update_id=update.update_id,
            outcome=outcome.kind.value,
            reason=outcome.reason,
        )
        return outcome

    # ============================================================
    # 消息
    # ============================================================

    async def _handle_message(self, message: TelegramMessage) -> HandlerOutcome:
        sender = message.from_
        if sender is None:
            return HandlerOutcome.ok("no_sender")
        text = message.text.strip()
        if not text:
            return HandlerOutcome.ok("no_text")

        chat_id = str(message.chat.id)
        user_id = str(sender.id)

        command = parse_command(text)
        if command is not None and command[0] not in _PRIORITY_PREFIXES:
            return await self._handle_command(command, message, sender)

        auth = await self._links.authorize(user_id, chat_id)
        if not auth.ok:
            await self._dispatcher.reply(chat_id, cards.BINDING_FAILURE_TEXTS[auth.failure.value])
            log.info("chat_not_authorized", chat_id=chat_id, reason=auth.failure.value)
            return HandlerOutcome.recoverable(auth.failure.value)

        try:
            task_id = await self._slots.pop(SlotPurpose.OFFICE_DETAILS, user_id)
            if task_id is not None:
                actor = self._actor(sender, auth, ActorRole.OFFICE)
                task = await self._tasks.finalize_with_details(task_id, text, actor)
                await self._dispatcher.reply(chat_id, cards.details_saved_text(task))
                return HandlerOutcome.ok("details_saved")

            task_id = await self._slots.pop(SlotPurpose.MASTER_COMMENT, user_id)
            if task_id is not None:
                actor = self._actor(sender, auth, self._role_for(chat_id, auth.user))
                task = await self._tasks.save_master_comment(task_id, text, actor)
                await self._dispatcher.reply(chat_id, cards.comment_saved_text(task))
                return HandlerOutcome.ok("comment_saved")

            if self._throttle is not None:
                wait_s = await self._throttle.acquire(user_id)
                if wait_s:
                    await self._dispatcher.reply(chat_id, cards.rate_limited_text(wait_s))
                    return HandlerOutcome.recoverable("rate_limited")

            created_by = CreatedBy(user_id=user_id, chat_id=chat_id, name=sender.display_name)
            task = await self._tasks.create_task(created_by, text)
            await self._dispatcher.reply(chat_id, cards.task_created_text(task))
            return HandlerOutcome.ok("task_created")
        except VeroTasksError as e:
            log.info("message_action_rejected", code=e.code, error=str(e))
            await self._dispatcher.reply(chat_id, cards.error_text(e.code))
            return HandlerOutcome.recoverable(e.code)

    async def _handle_command(
        self,
        command: tuple[str, str],
        message: TelegramMessage,
        sender: TelegramUser,
    ) -> HandlerOutcome:
        name, arg = command
        chat_id = str(message.chat.id)

        if name == "id":
            text = cards.chat_info_text(
                chat_id, message.chat.type, message.chat.title, str(sender.id)
            )
            await self._dispatcher.reply(chat_id, text)
            return HandlerOutcome.ok("chat_info")

        if name == "link":
            if not arg:
                await self._dispatcher.reply(chat_id, cards.LINK_USAGE_TEXT)
                return HandlerOutcome.recoverable("invalid_input")
            try:
                await self._links.redeem_token(arg, str(sender.id), chat_id)
            except VeroTasksError as e:
                log.info("link_rejected", code=e.code)
                await self._dispatcher.reply(chat_id, cards.error_text(e.code))
                return HandlerOutcome.recoverable(e.code)
            await self._dispatcher.reply(chat_id, cards.LINK_SUCCESS_TEXT)
            return HandlerOutcome.ok("linked")

        # /start、/help 与未知命令都回复帮助
        await self._dispatcher.reply(chat_id, cards.HELP_TEXT)
        return HandlerOutcome.ok("help")

    # ============================================================
    # 按钮回调
    # ============================================================

    async def _handle_callback(self, query: CallbackQuery) -> HandlerOutcome:
        action = parse_callback_data(query.data)
        if action is None:
            log.warning("callback_invalid", data=query.data)
            await self._dispatcher.answer_callback(query.id, "Unknown action")
            return HandlerOutcome.fatal("invalid_callback")

        chat_id = str(query.message.chat.id) if query.message is not None else ""
        user_id = str(query.from_.id)

        auth = await self._links.authorize(user_id, chat_id)
        if not auth.ok:
            log.info("chat_not_authorized", chat_id=chat_id, reason=auth.failure.value)
            await self._dispatcher.answer_callback(query.id, cards.error_text("not_authorized"))
            return HandlerOutcome.recoverable(auth.failure.value)

        actor = self._actor(query.from_, auth, self._role_for(chat_id, auth.user))
        try:
            answer = await self._run_callback(action, actor, auth, user_id, chat_id)
        except VeroTasksError as e:
            log.info("callback_rejected", task_id=action.task_id, code=e.code, error=str(e))
            await self._dispatcher.answer_callback(query.id, cards.error_text(e.code))
            return HandlerOutcome.recoverable(e.code)

        await self._dispatcher.answer_callback(query.id, answer)
        return HandlerOutcome.ok(action.kind.value)

    async def _run_callback(
        self,
        action: CallbackAction,
        actor: AuditActor,
        auth: AuthResult,
        user_id: str,
        chat_id: str,
    ) -> str:
        """执行按钮动作，返回回调应答文本"""
        task_id = action.task_id

        if action.kind == CallbackKind.PRIORITY:
            task = await self._tasks.set_priority(task_id, Priority(action.value), actor)
            return f"Priority: {task.priority.value}"

        if action.kind == CallbackKind.SIGNAL:
            by = SignalActor(
                uid=auth.user.uid if auth.user else actor.user_id,
                email=auth.user.email if auth.user else actor.name,
            )
            result = await self._tasks.submit_office_signal(
                task_id,
                OfficeSignalState(action.value),
                by=by,
            )
            return cards.SIGNAL_RESULT_TEXTS.get(result.reason, result.reason)

        if action.kind == CallbackKind.DETAILS:
            await self._tasks.request_details(task_id, actor)
            await self._slots.set(SlotPurpose.OFFICE_DETAILS, user_id, task_id)
            await self._dispatcher.reply(chat_id, cards.details_prompt_text(task_id))
            return "Waiting for details"

        if action.kind == CallbackKind.MASTER_STATUS:
            task = await self._tasks.apply_master_decision(task_id, TaskStatus(action.value), actor)
            return f"Status: {task.status.value}"

        # MASTER_COMMENT
        if actor.role != ActorRole.MASTER:
            raise ForbiddenError("Only the master can reply to a task", code="role_not_allowed")
        if await self._tasks.get_task(task_id) is None:
            raise TaskNotFoundError(task_id)
        await self._slots.set(SlotPurpose.MASTER_COMMENT, user_id, task_id)
        await self._dispatcher.reply(chat_id, cards.comment_prompt_text(task_id))
        return "Waiting for your reply"

    # ============================================================
    # 身份
    # ============================================================

    def _role_for(self, chat_id: str, user: User | None) -> ActorRole:
        """Master chat 或 master 角色用户视为 Master，其余视为办公室"""
        if self._config.master_chat_id and chat_id == self._config.master_chat_id:
            return ActorRole.MASTER
        if user is not None and user.is_allowed and user.role == UserRole.MASTER:
            return ActorRole.MASTER
        return ActorRole.OFFICE

    @staticmethod
    def _actor(sender: TelegramUser, auth: AuthResult, role: ActorRole) -> AuditActor:
        if auth.user is not None:
            return AuditActor(
                user_id=auth.user.uid,
                name=auth.user.name or auth.user.email or sender.display_name,
                role=role,
            )
        return AuditActor(user_id=f"tg:{sender.id}", name=sender.display_name, role=role)
