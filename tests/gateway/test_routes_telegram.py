"""Telegram 路由测试 -- webhook 应答码与 webhook 注册"""

from fastapi import FastAPI
from httpx import AsyncClient

from verotasks.notifier import DispatchRejectedError

HOOK_HEADERS = {"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}
OFFICE_HEADERS = {"X-Office-Secret": "office-secret"}


def _update(update_id: int, text: str = "Printer jammed") -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 1,
            "chat": {"id": 8000, "type": "group"},
            "from": {"id": 7, "first_name": "Rui"},
            "text": text,
        },
    }


class TestWebhook:
    async def test_bad_secret_is_401(self, client: AsyncClient):
        resp = await client.post(
            "/telegram/webhook",
            json=_update(1),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )
        assert resp.status_code == 401
        assert resp.json() == {"ok": False, "outcome": "fatal", "reason": "bad_secret"}

    async def test_message_creates_task(self, client: AsyncClient, app: FastAPI):
        resp = await client.post("/telegram/webhook", json=_update(1), headers=HOOK_HEADERS)

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "outcome": "ok", "reason": "task_created"}
        assert len(await app.state.task_service.list_tasks()) == 1

    async def test_replay_is_acknowledged(self, client: AsyncClient, app: FastAPI):
        await client.post("/telegram/webhook", json=_update(1), headers=HOOK_HEADERS)
        resp = await client.post("/telegram/webhook", json=_update(1), headers=HOOK_HEADERS)

        assert resp.status_code == 200
        assert resp.json()["reason"] == "duplicate_update"
        assert len(await app.state.task_service.list_tasks()) == 1

    async def test_malformed_body_is_acknowledged(self, client: AsyncClient):
        resp = await client.post(
            "/telegram/webhook",
            content=b"not json",
            headers={**HOOK_HEADERS, "Content-Type": "application/json"},
        )
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "fatal"
        assert resp.json()["reason"] == "invalid_update"

    async def test_unauthorized_chat_is_recoverable(self, client: AsyncClient, notifier):
        update = _update(1)
        update["message"]["chat"] = {"id": 55, "type": "private"}
        update["message"]["from"] = {"id": 55, "first_name": "Stranger"}

        resp = await client.post("/telegram/webhook", json=update, headers=HOOK_HEADERS)

        assert resp.status_code == 200
        assert resp.json()["outcome"] == "recoverable"
        assert resp.json()["reason"] == "not_linked"
        assert len(notifier.sent_to("55")) == 1


class TestWebhookRegistration:
    async def test_requires_office_secret(self, client: AsyncClient):
        resp = await client.post("/telegram/set-webhook")
        assert resp.status_code == 401

    async def test_set_webhook(self, client: AsyncClient, notifier):
        resp = await client.post("/telegram/set-webhook", headers=OFFICE_HEADERS)

        url = "https://tasks.example.com/telegram/webhook"
        assert resp.json() == {"ok": True, "url": url}
        assert notifier.webhook_url == url

    async def test_set_webhook_without_base_url(self, client: AsyncClient, app: FastAPI):
        app.state.gateway_config = app.state.gateway_config.model_copy(update={"base_url": ""})
        resp = await client.post("/telegram/set-webhook", headers=OFFICE_HEADERS)
        assert resp.status_code == 500
        assert resp.json()["error"] == "server_misconfigured"

    async def test_set_webhook_rejected_by_api(self, client: AsyncClient, notifier):
        notifier.fail_with = DispatchRejectedError("setWebhook", 401, "Unauthorized")
        resp = await client.post("/telegram/set-webhook", headers=OFFICE_HEADERS)
        assert resp.status_code == 502
        assert resp.json() == {"ok": False, "error": "dispatch_failed"}

    async def test_delete_webhook(self, client: AsyncClient, notifier):
        notifier.webhook_url = "https://tasks.example.com/telegram/webhook"
        resp = await client.post("/telegram/delete-webhook", headers=OFFICE_HEADERS)
        assert resp.json() == {"ok": True}
        assert notifier.webhook_url == ""
