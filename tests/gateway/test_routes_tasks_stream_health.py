"""任务查询、SSE 审计流与健康检查路由测试"""

import json

from fastapi import FastAPI
from httpx import AsyncClient

from verotasks.core.models import ActorRole, AuditActor, CreatedBy, Task, TaskStatus
from verotasks.notifier import DispatchUnreachableError

MASTER = AuditActor(user_id="m", name="Boss", role=ActorRole.MASTER)


async def _create_task(app: FastAPI, text: str = "Printer jammed") -> Task:
    return await app.state.task_service.create_task(
        CreatedBy(user_id="42", chat_id="42", name="Ana"), text
    )


class TestTaskQueries:
    async def test_empty_list(self, client: AsyncClient):
        resp = await client.get("/api/tasks")
        assert resp.status_code == 200
        assert resp.json() == {"tasks": []}

    async def test_list_buckets(self, client: AsyncClient, app: FastAPI):
        open_task = await _create_task(app, "Fix chair")
        closed_task = await _create_task(app, "Order paper")
        await app.state.task_service.apply_master_decision(
            closed_task.task_id, TaskStatus.DONE, MASTER
        )

        pending = (await client.get("/api/tasks", params={"bucket": "pending"})).json()
        closed = (await client.get("/api/tasks", params={"bucket": "closed"})).json()

        assert [t["task_id"] for t in pending["tasks"]] == [open_task.task_id]
        assert [t["task_id"] for t in closed["tasks"]] == [closed_task.task_id]
        summary = pending["tasks"][0]
        assert summary["title"] == "Fix chair"
        assert summary["priority"] == "medium"
        assert summary["created_by"] == "Ana"
        assert summary["office_signal"] is None

    async def test_invalid_query(self, client: AsyncClient):
        assert (await client.get("/api/tasks", params={"bucket": "archived"})).status_code == 400
        assert (await client.get("/api/tasks", params={"limit": 0})).status_code == 400
        assert (await client.get("/api/tasks", params={"status": "closed"})).status_code == 400

    async def test_detail_with_audit(self, client: AsyncClient, app: FastAPI):
        task = await _create_task(app)
        resp = await client.get(f"/api/tasks/{task.task_id}")

        assert resp.status_code == 200
        data = resp.json()
        assert data["task"]["task_id"] == task.task_id
        assert data["task"]["office_card"]["chat_id"] == "8000"
        assert [e["action"] for e in data["audit"]] == ["create", "office_post"]

    async def test_detail_not_found(self, client: AsyncClient):
        resp = await client.get("/api/tasks/01JNONEXISTENT0000000000AB")
        assert resp.status_code == 404
        assert resp.json() == {"ok": False, "error": "task_not_found"}


class TestStream:
    async def test_stream_not_found(self, client: AsyncClient):
        resp = await client.get("/api/stream/task/01JNONEXISTENT0000000000AB")
        assert resp.status_code == 404

    async def test_history_and_resume(self, client: AsyncClient, app: FastAPI):
        task = await _create_task(app)
        audit = await app.state.task_service.get_audit(task.task_id)

        async def read_events(headers: dict[str, str]) -> list[tuple[str, dict]]:
            events: list[tuple[str, dict]] = []
            event_name = ""
            async with client.stream(
                "GET",
                f"/api/stream/task/{task.task_id}",
                params={"follow": "false"},
                headers=headers,
            ) as response:
                assert response.status_code == 200
                async for line in response.aiter_lines():
                    if line.startswith("event:"):
                        event_name = line[len("event:"):].strip()
                    elif line.startswith("data:"):
                        events.append((event_name, json.loads(line[len("data:"):].strip())))
            return events

        history = await read_events({})
        assert [name for name, _ in history] == ["create", "office_post"]
        assert history[0][1]["entry_id"] == audit[0].entry_id

        resumed = await read_events({"Last-Event-ID": audit[0].entry_id})
        assert [data["entry_id"] for _, data in resumed] == [audit[1].entry_id]

    async def test_hub_delivers_new_entries(self, app: FastAPI):
        task = await _create_task(app)
        queue = await app.state.sse_hub.subscribe(task.task_id)

        await app.state.task_service.apply_master_decision(task.task_id, TaskStatus.DONE, MASTER)

        entry = queue.get_nowait()
        assert entry.action == "master_status"
        assert entry.status_after == TaskStatus.DONE
        await app.state.sse_hub.unsubscribe(task.task_id, queue)
        assert app.state.sse_hub.subscriber_count(task.task_id) == 0


class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "service": "verotasks",
            "cooldown_s": 90,
            "has_office_chat": True,
        }

    async def test_ready_core(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"] == {"sqlite": "ok", "notifier": "skipped"}

    async def test_ready_full_with_notifier_down(self, client: AsyncClient, notifier):
        notifier.fail_with = DispatchUnreachableError("echo://", OSError("down"))
        resp = await client.get("/ready", params={"profile": "full"})
        assert resp.status_code == 503
        assert resp.json()["checks"]["notifier"] == "unreachable"
