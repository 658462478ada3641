"""nudge / 仪表盘 / 手动 dispatch 路由测试"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from chaser.core.config import SchedulerConfig
from chaser.core.store.timefmt import to_db
from chaser.sink import SinkUnreachableError
from httpx import AsyncClient
from pydantic import SecretStr


async def _create(client: AsyncClient, hours: float = 30, **overrides) -> dict:
    body = {
        "title": "Submit expense report",
        "assignee_email": "carol@example.com",
        "assignee_name": "Carol",
        "due_date": (datetime.now(UTC) + timedelta(hours=hours)).isoformat(),
        "phone_number": "+15550101",
    }
    body.update(overrides)
    resp = await client.post("/api/tasks", json=body)
    assert resp.status_code == 201
    return resp.json()


async def _make_due(test_app, queue_id: str) -> None:
    """把条目的计划时间挪到过去"""
    conn = test_app.state.store_group.conn
    past = datetime.now(UTC) - timedelta(minutes=1)
    await conn.execute(
        "UPDATE chaser_queue SET scheduled_at = ? WHERE queue_id = ?",
        (to_db(past), queue_id),
    )
    await conn.commit()


class TestNudge:
    async def test_nudge_delivered(self, client: AsyncClient, echo_sink):
        task_id = (await _create(client))["task"]["task_id"]

        resp = await client.post(
            "/api/nudges",
            json={"taskId": task_id, "channels": {"email": True, "sms": True, "call": False}},
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["outcome"] == "triggered"
        assert data["chaser"]["escalation_tier"] == 0
        assert data["chaser"]["channels"]["slack"] is True

        (payload,) = echo_sink.payloads_for_task(task_id)
        assert payload.escalation_tier == 0
        assert payload.sms_message != ""
        assert payload.call_message == ""

    async def test_snake_case_task_id_accepted(self, client: AsyncClient):
        task_id = (await _create(client))["task"]["task_id"]
        resp = await client.post("/api/nudges", json={"task_id": task_id})
        assert resp.status_code == 200

    async def test_unknown_task(self, client: AsyncClient):
        resp = await client.post("/api/nudges", json={"taskId": "missing"})
        assert resp.status_code == 404

    async def test_completed_task(self, client: AsyncClient):
        task_id = (await _create(client))["task"]["task_id"]
        await client.post(f"/api/tasks/{task_id}/complete")

        resp = await client.post("/api/nudges", json={"taskId": task_id})
        assert resp.status_code == 409

    async def test_sink_failure_returns_502(self, client: AsyncClient, test_app):
        dispatcher = test_app.state.dispatcher
        sink = AsyncMock()
        sink.dispatch = AsyncMock(
            side_effect=SinkUnreachableError("https://hooks.test", ConnectionError("down"))
        )
        dispatcher._sink = sink
        task_id = (await _create(client))["task"]["task_id"]

        resp = await client.post("/api/nudges", json={"taskId": task_id})

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "SINK_UNAVAILABLE"
        # 条目保持 pending，等待调度器重试
        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        tiers = [c["escalation_tier"] for c in detail["pending_chasers"]]
        assert 0 in tiers

    async def test_no_sink_returns_502(self, client: AsyncClient, test_app):
        test_app.state.dispatcher._sink = None
        task_id = (await _create(client))["task"]["task_id"]

        resp = await client.post("/api/nudges", json={"taskId": task_id})
        assert resp.status_code == 502


class TestDashboard:
    async def test_upcoming(self, client: AsyncClient):
        await _create(client, hours=30, title="Later")
        await _create(client, hours=2, title="Soon")

        resp = await client.get("/api/queue/upcoming")

        assert resp.status_code == 200
        chasers = resp.json()["chasers"]
        assert len(chasers) == 5
        assert chasers[0]["task_title"] == "Soon"
        assert chasers[0]["assignee_name"] == "Carol"
        assert chasers[0]["chaser"]["escalation_tier"] == 4

    async def test_upcoming_limit(self, client: AsyncClient):
        await _create(client)
        resp = await client.get("/api/queue/upcoming", params={"limit": 2})
        assert len(resp.json()["chasers"]) == 2

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_upcoming_limit_out_of_range(self, client: AsyncClient, limit):
        resp = await client.get("/api/queue/upcoming", params={"limit": limit})
        assert resp.status_code == 400

    async def test_stats(self, client: AsyncClient):
        first = await _create(client)
        second = await _create(client)
        await client.post(
            "/api/webhooks/chaser-sent", json={"queue_id": first["chasers"][0]["queue_id"]}
        )
        await client.post(
            "/api/webhooks/chaser-failed", json={"queue_id": first["chasers"][1]["queue_id"]}
        )
        await client.post(f"/api/tasks/{second['task']['task_id']}/complete")

        resp = await client.get("/api/stats")

        assert resp.json() == {"totalTasks": 2, "pendingTasks": 1, "chasersSentToday": 1}


class TestCronDispatch:
    async def test_dispatch_due_entries(self, client: AsyncClient, test_app, echo_sink):
        data = await _create(client)
        queue_id = data["chasers"][0]["queue_id"]
        await _make_due(test_app, queue_id)

        resp = await client.post("/api/cron/dispatch")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["selected"] == 1
        assert body["triggered"] == 1
        assert [p.queue_id for p in echo_sink.dispatched] == [queue_id]

    async def test_get_also_allowed(self, client: AsyncClient):
        resp = await client.get("/api/cron/dispatch")
        assert resp.status_code == 200
        assert resp.json()["selected"] == 0

    async def test_cron_secret(self, client: AsyncClient, test_app):
        test_app.state.scheduler_config = SchedulerConfig(
            enabled=False, cron_secret=SecretStr("cron-key")
        )

        denied = await client.post("/api/cron/dispatch")
        allowed = await client.post(
            "/api/cron/dispatch", headers={"Authorization": "Bearer cron-key"}
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200
