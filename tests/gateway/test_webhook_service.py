"""WebhookService 测试 -- 命令、绑定校验、等待槽与按钮回调"""

from datetime import UTC, datetime

import pytest

from verotasks.core.models import ChatBinding, Priority, TaskStatus, User, UserRole, UserStatus
from verotasks.core.store import write_transaction
from verotasks.gateway.config import GatewayConfig
from verotasks.gateway.services import cards
from verotasks.gateway.services.awaiting import AwaitingSlots
from verotasks.gateway.services.dispatcher import NotificationDispatcher
from verotasks.gateway.services.idempotency import UpdateGuard
from verotasks.gateway.services.link_service import LinkService
from verotasks.gateway.services.outcome import OutcomeKind
from verotasks.gateway.services.task_service import TaskService
from verotasks.gateway.services.throttle import SenderThrottle
from verotasks.gateway.services.webhook_service import WebhookService, parse_command
from verotasks.notifier import EchoNotifier

SECRET = "hook-secret"


def _message(update_id: int, text: str, chat_id: int = 42, user_id: int = 42) -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "chat": {"id": chat_id, "type": "private"},
            "from": {"id": user_id, "first_name": "Ana"},
            "text": text,
        },
    }


def _callback(update_id: int, data: str, chat_id: int = 8000, user_id: int = 7) -> dict:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cb{update_id}",
            "from": {"id": user_id, "first_name": "Rui"},
            "data": data,
            "message": {"message_id": 1, "chat": {"id": chat_id, "type": "group"}},
        },
    }


@pytest.fixture
def dispatcher(notifier, gateway_config) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, gateway_config)


@pytest.fixture
def tasks(store_group, dispatcher, clock) -> TaskService:
    return TaskService(store_group, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def links(store_group, gateway_config, clock) -> LinkService:
    return LinkService(store_group, gateway_config, clock=clock)


@pytest.fixture
def webhook(store_group, gateway_config, tasks, links, dispatcher, clock) -> WebhookService:
    return WebhookService(
        config=gateway_config,
        task_service=tasks,
        link_service=links,
        dispatcher=dispatcher,
        update_guard=UpdateGuard(store_group.kv_store, clock=clock.epoch),
        slots=AwaitingSlots(store_group.kv_store, clock=clock.epoch),
    )


@pytest.fixture
def throttled_webhook(
    store_group, gateway_config, tasks, links, dispatcher, clock
) -> WebhookService:
    return WebhookService(
        config=gateway_config,
        task_service=tasks,
        link_service=links,
        dispatcher=dispatcher,
        update_guard=UpdateGuard(store_group.kv_store, clock=clock.epoch),
        slots=AwaitingSlots(store_group.kv_store, clock=clock.epoch),
        throttle=SenderThrottle(store_group.kv_store, interval_s=3, clock=clock.epoch),
    )


class TestParseCommand:
    def test_parse(self):
        assert parse_command("/link ab12cd") == ("link", "ab12cd")
        assert parse_command("/HELP@VeroBot") == ("help", "")
        assert parse_command("Printer down") is None


class TestEnvelope:
    async def test_bad_secret(self, webhook: WebhookService, tasks: TaskService):
        outcome = await webhook.handle(_message(1, "Printer down", 8000), secret="wrong")
        assert outcome.kind == OutcomeKind.FATAL
        assert outcome.reason == "bad_secret"
        assert await tasks.list_tasks() == []

    def test_secret_optional_when_unset(self, webhook: WebhookService):
        assert webhook.check_secret(SECRET)
        assert not webhook.check_secret(None)
        open_hook = WebhookService(GatewayConfig(), None, None, None, None, None)
        assert open_hook.check_secret(None)

    async def test_invalid_update(self, webhook: WebhookService):
        outcome = await webhook.handle({"message": "nope"}, secret=SECRET)
        assert outcome.kind == OutcomeKind.FATAL
        assert outcome.reason == "invalid_update"

    async def test_replay_is_ignored(self, webhook: WebhookService, tasks: TaskService):
        first = await webhook.handle(_message(5, "Printer down", 8000), secret=SECRET)
        second = await webhook.handle(_message(5, "Printer down", 8000), secret=SECRET)

        assert first.reason == "task_created"
        assert second.kind == OutcomeKind.OK
        assert second.reason == "duplicate_update"
        assert len(await tasks.list_tasks()) == 1

    async def test_edited_message_ignored(self, webhook: WebhookService):
        payload = _message(6, "edited")
        payload["edited_message"] = payload.pop("message")
        outcome = await webhook.handle(payload, secret=SECRET)
        assert outcome.reason == "ignored"

    async def test_unexpected_error_is_fatal(
        self,
        webhook: WebhookService,
        tasks: TaskService,
        monkeypatch: pytest.MonkeyPatch,
    ):
        async def boom(*args, **kwargs):
            raise RuntimeError("db exploded")

        monkeypatch.setattr(tasks, "create_task", boom)
        outcome = await webhook.handle(_message(7, "Printer down", 8000), secret=SECRET)
        assert outcome.kind == OutcomeKind.FATAL
        assert outcome.reason == "internal_error"


class TestCommands:
    @pytest.mark.parametrize("text", ["/start", "/help", "/whatever"])
    async def test_help(self, webhook: WebhookService, notifier: EchoNotifier, text: str):
        outcome = await webhook.handle(_message(1, text), secret=SECRET)
        assert outcome.reason == "help"
        assert notifier.sent_to("42")[-1].text == cards.HELP_TEXT

    async def test_id(self, webhook: WebhookService, notifier: EchoNotifier):
        outcome = await webhook.handle(_message(1, "/id", chat_id=-100123), secret=SECRET)
        assert outcome.reason == "chat_info"
        assert "-100123" in notifier.sent_to("-100123")[-1].text

    async def test_link_without_code(self, webhook: WebhookService):
        outcome = await webhook.handle(_message(1, "/link"), secret=SECRET)
        assert outcome.kind == OutcomeKind.RECOVERABLE
        assert outcome.reason == "invalid_input"

    async def test_link_flow(
        self,
        webhook: WebhookService,
        links: LinkService,
        notifier: EchoNotifier,
        seed_user,
    ):
        await seed_user()
        token = await links.issue_token("u-office", "office@example.com")

        linked = await webhook.handle(_message(1, f"/link {token.token}"), secret=SECRET)
        reused = await webhook.handle(_message(2, f"/link {token.token}"), secret=SECRET)

        assert linked.reason == "linked"
        assert notifier.sent_to("42")[0].text == cards.LINK_SUCCESS_TEXT
        assert reused.kind == OutcomeKind.RECOVERABLE
        assert reused.reason == "token_not_found"


class TestMessages:
    async def test_unlinked_chat_cannot_create(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        outcome = await webhook.handle(_message(1, "Printer down"), secret=SECRET)

        assert outcome.kind == OutcomeKind.RECOVERABLE
        assert outcome.reason == "not_linked"
        assert notifier.sent_to("42")[0].text == cards.BINDING_FAILURE_TEXTS["not_linked"]
        assert await tasks.list_tasks() == []

    async def test_linked_chat_creates_task_with_prefix(
        self,
        webhook: WebhookService,
        links: LinkService,
        tasks: TaskService,
        notifier: EchoNotifier,
        seed_user,
    ):
        await seed_user()
        token = await links.issue_token("u-office", "office@example.com")
        await links.redeem_token(token.token, "42", "42")

        outcome = await webhook.handle(_message(1, "/p high Replace the bulb"), secret=SECRET)

        assert outcome.reason == "task_created"
        [task] = await tasks.list_tasks()
        assert task.priority == Priority.HIGH
        assert task.created_by.chat_id == "42"
        assert "Task created" in notifier.sent_to("42")[-1].text
        assert len(notifier.sent_to("8000")) == 1

    async def test_office_chat_creates_task(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        outcome = await webhook.handle(
            _message(1, "Kitchen tap leaking", chat_id=8000, user_id=7), secret=SECRET
        )
        assert outcome.reason == "task_created"
        [task] = await tasks.list_tasks()
        assert task.created_by.user_id == "7"
        # 卡片 + 创建回执
        assert len(notifier.sent_to("8000")) == 2

    async def test_sender_rate_limited_between_tasks(
        self,
        throttled_webhook: WebhookService,
        tasks: TaskService,
        notifier: EchoNotifier,
        clock,
    ):
        first = await throttled_webhook.handle(
            _message(1, "Kitchen tap leaking", chat_id=8000, user_id=7), secret=SECRET
        )
        clock.advance(1)
        second = await throttled_webhook.handle(
            _message(2, "Window cracked", chat_id=8000, user_id=7), secret=SECRET
        )

        assert first.reason == "task_created"
        assert second.kind == OutcomeKind.RECOVERABLE
        assert second.reason == "rate_limited"
        assert notifier.sent_to("8000")[-1].text == cards.rate_limited_text(2)
        assert len(await tasks.list_tasks()) == 1

        clock.advance(2)
        third = await throttled_webhook.handle(
            _message(3, "Window cracked", chat_id=8000, user_id=7), secret=SECRET
        )
        assert third.reason == "task_created"
        assert len(await tasks.list_tasks()) == 2

    async def test_details_reply_not_rate_limited(
        self, throttled_webhook: WebhookService, tasks: TaskService
    ):
        await throttled_webhook.handle(
            _message(1, "Printer down", chat_id=8000, user_id=7), secret=SECRET
        )
        [task] = await tasks.list_tasks()
        await throttled_webhook.handle(_callback(2, f"details:{task.task_id}"), secret=SECRET)

        saved = await throttled_webhook.handle(
            _message(3, "Replaced the toner", chat_id=8000, user_id=7), secret=SECRET
        )
        assert saved.reason == "details_saved"


class TestCallbacks:
    async def _create(self, webhook: WebhookService, tasks: TaskService) -> str:
        await webhook.handle(_message(100, "Printer down", chat_id=8000, user_id=7), secret=SECRET)
        [task] = await tasks.list_tasks()
        return task.task_id

    async def test_invalid_callback(self, webhook: WebhookService, notifier: EchoNotifier):
        outcome = await webhook.handle(_callback(1, "sig:T:help"), secret=SECRET)
        assert outcome.kind == OutcomeKind.FATAL
        assert outcome.reason == "invalid_callback"
        assert notifier.answered == [("cb1", "Unknown action")]

    async def test_unlinked_callback(self, webhook: WebhookService, notifier: EchoNotifier):
        outcome = await webhook.handle(_callback(1, "sig:T:need_help", chat_id=42), secret=SECRET)
        assert outcome.kind == OutcomeKind.RECOVERABLE
        assert outcome.reason == "not_linked"
        assert notifier.answered == [("cb1", cards.error_text("not_authorized"))]

    async def test_priority_button(self, webhook: WebhookService, tasks: TaskService):
        task_id = await self._create(webhook, tasks)
        outcome = await webhook.handle(_callback(1, f"prio:{task_id}:urgent"), secret=SECRET)
        assert outcome.reason == "prio"
        assert (await tasks.get_task(task_id)).priority == Priority.URGENT

    async def test_signal_button(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        task_id = await self._create(webhook, tasks)

        first = await webhook.handle(_callback(1, f"sig:{task_id}:need_help"), secret=SECRET)
        again = await webhook.handle(_callback(2, f"sig:{task_id}:need_help"), secret=SECRET)

        assert first.reason == again.reason == "sig"
        assert notifier.answered == [
            ("cb1", cards.SIGNAL_RESULT_TEXTS["ok"]),
            ("cb2", cards.SIGNAL_RESULT_TEXTS["duplicate"]),
        ]
        assert len(notifier.sent_to("9000")) == 1
        signal = (await tasks.get_task(task_id)).office_signal
        assert signal.updated_by.uid == "tg:7"

    async def test_details_flow(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        task_id = await self._create(webhook, tasks)

        outcome = await webhook.handle(_callback(1, f"details:{task_id}"), secret=SECRET)
        assert outcome.reason == "details"
        assert task_id in notifier.sent_to("8000")[-1].text

        saved = await webhook.handle(
            _message(2, "Replaced the toner", chat_id=8000, user_id=7), secret=SECRET
        )
        assert saved.reason == "details_saved"
        task = await tasks.get_task(task_id)
        assert task.status == TaskStatus.DONE_WITH_DETAILS
        assert task.details == "Replaced the toner"
        assert len(await tasks.list_tasks()) == 1

    async def test_master_decision_from_master_chat(
        self, webhook: WebhookService, tasks: TaskService
    ):
        task_id = await self._create(webhook, tasks)
        outcome = await webhook.handle(
            _callback(1, f"mstatus:{task_id}:done", chat_id=9000, user_id=1), secret=SECRET
        )
        assert outcome.reason == "mstatus"
        assert (await tasks.get_task(task_id)).status == TaskStatus.DONE

    async def _seed_master(self, store_group, status: UserStatus) -> None:
        user = User(
            uid="u-boss",
            email="boss@example.com",
            role=UserRole.MASTER,
            status=status,
            binding=ChatBinding(
                telegram_user_id="555",
                telegram_chat_id="555",
                linked_at=datetime(2026, 3, 1, tzinfo=UTC),
            ),
        )
        async with write_transaction(store_group.conn):
            await store_group.user_store.upsert_user(user)

    async def test_master_role_user_decides_from_office_chat(
        self, webhook: WebhookService, tasks: TaskService, store_group
    ):
        task_id = await self._create(webhook, tasks)
        await self._seed_master(store_group, UserStatus.ACTIVE)

        outcome = await webhook.handle(
            _callback(1, f"mstatus:{task_id}:done", chat_id=8000, user_id=555), secret=SECRET
        )
        assert outcome.reason == "mstatus"
        assert (await tasks.get_task(task_id)).status == TaskStatus.DONE

    async def test_disabled_master_loses_master_role(
        self, webhook: WebhookService, tasks: TaskService, store_group
    ):
        task_id = await self._create(webhook, tasks)
        await self._seed_master(store_group, UserStatus.DISABLED)

        decided = await webhook.handle(
            _callback(1, f"mstatus:{task_id}:done", chat_id=8000, user_id=555), secret=SECRET
        )
        comment = await webhook.handle(
            _callback(2, f"mcomment:{task_id}", chat_id=8000, user_id=555), secret=SECRET
        )

        assert decided.kind == OutcomeKind.RECOVERABLE
        assert decided.reason == "role_not_allowed"
        assert comment.reason == "role_not_allowed"
        assert (await tasks.get_task(task_id)).status == TaskStatus.OPEN

    async def test_master_decision_from_office_chat_rejected(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        task_id = await self._create(webhook, tasks)
        outcome = await webhook.handle(_callback(1, f"mstatus:{task_id}:done"), secret=SECRET)
        assert outcome.kind == OutcomeKind.RECOVERABLE
        assert outcome.reason == "role_not_allowed"
        assert notifier.answered[-1] == ("cb1", cards.error_text("role_not_allowed"))

    async def test_signal_on_closed_task(self, webhook: WebhookService, tasks: TaskService):
        task_id = await self._create(webhook, tasks)
        await webhook.handle(
            _callback(1, f"mstatus:{task_id}:failed", chat_id=9000, user_id=1), secret=SECRET
        )
        outcome = await webhook.handle(_callback(2, f"sig:{task_id}:problem"), secret=SECRET)
        assert outcome.reason == "task_closed"

    async def test_master_comment_flow(
        self, webhook: WebhookService, tasks: TaskService, notifier: EchoNotifier
    ):
        task_id = await self._create(webhook, tasks)

        prompt = await webhook.handle(
            _callback(1, f"mcomment:{task_id}", chat_id=9000, user_id=1), secret=SECRET
        )
        saved = await webhook.handle(
            _message(2, "Call the vendor", chat_id=9000, user_id=1), secret=SECRET
        )

        assert prompt.reason == "mcomment"
        assert saved.reason == "comment_saved"
        assert (await tasks.get_task(task_id)).master_comment == "Call the vendor"
        assert any("Call the vendor" in m.text for m in notifier.sent_to("8000"))

    async def test_office_cannot_open_comment_slot(
        self, webhook: WebhookService, tasks: TaskService
    ):
        task_id = await self._create(webhook, tasks)
        outcome = await webhook.handle(_callback(1, f"mcomment:{task_id}"), secret=SECRET)
        assert outcome.reason == "role_not_allowed"

    async def test_comment_slot_for_missing_task(self, webhook: WebhookService):
        outcome = await webhook.handle(
            _callback(1, "mcomment:missing", chat_id=9000, user_id=1), secret=SECRET
        )
        assert outcome.reason == "task_not_found"
