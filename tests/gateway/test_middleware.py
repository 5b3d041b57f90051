"""可观测性测试 -- request_id 响应头、来源标注与敏感字段遮蔽"""

from httpx import AsyncClient

from verotasks.gateway.middleware.logging_config import redact_secrets
from verotasks.gateway.middleware.logging_mw import _channel_for


class TestRequestId:
    async def test_request_id_header(self, client: AsyncClient):
        resp = await client.get("/api/tasks")
        assert resp.status_code == 200
        # ULID 格式：26 字符
        assert len(resp.headers["x-request-id"]) == 26

    async def test_request_ids_are_unique(self, client: AsyncClient):
        ids = {(await client.get("/health")).headers["x-request-id"] for _ in range(3)}
        assert len(ids) == 3


class TestChannel:
    def test_channel_by_prefix(self):
        assert _channel_for("/telegram/webhook") == "telegram"
        assert _channel_for("/office/signal") == "office"
        assert _channel_for("/api/tasks") == "api"
        assert _channel_for("/health") == "api"


class TestRedactSecrets:
    def test_masks_sensitive_keys(self):
        event = {"event": "link_token_issued", "token": "ABC234", "uid": "u1"}
        assert redact_secrets(None, "info", event) == {
            "event": "link_token_issued",
            "token": "***",
            "uid": "u1",
        }

    def test_leaves_empty_values(self):
        event = {"event": "webhook_set", "secret_token": ""}
        assert redact_secrets(None, "info", event)["secret_token"] == ""
