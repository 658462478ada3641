"""sink 回调路由测试 -- 状态推进、重复回调、冲突、鉴权"""

import json
from datetime import UTC, datetime, timedelta

import pytest
from chaser.sink import SIGNATURE_HEADER, SinkConfig, compute_signature
from httpx import AsyncClient
from pydantic import SecretStr

SECRET = "shh"


async def _create(client: AsyncClient) -> dict:
    due = datetime.now(UTC) + timedelta(hours=30)
    resp = await client.post(
        "/api/tasks",
        json={
            "title": "Renew contract",
            "assignee_email": "bob@example.com",
            "due_date": due.isoformat(),
        },
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def secured(test_app):
    """启用回调共享密钥"""
    test_app.state.sink_config = SinkConfig(
        mode="echo", callback_secret=SecretStr(SECRET)
    )
    return test_app


class TestChaserSent:
    async def test_sent_then_duplicate(self, client: AsyncClient):
        data = await _create(client)
        task_id = data["task"]["task_id"]
        queue_id = data["chasers"][0]["queue_id"]

        first = await client.post(
            "/api/webhooks/chaser-sent",
            json={"queue_id": queue_id, "status": "sent", "execution_id": "exec-7"},
        )
        second = await client.post("/api/webhooks/chaser-sent", json={"queue_id": queue_id})

        assert first.status_code == 200
        assert first.json() == {
            "success": True,
            "queue_id": queue_id,
            "status": "sent",
            "duplicate": False,
            "log_recorded": True,
        }
        assert second.status_code == 200
        assert second.json()["duplicate"] is True

        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        assert detail["task"]["total_chasers_sent"] == 1
        assert len(detail["logs"]) == 1
        assert detail["logs"][0]["execution_id"] == "exec-7"

    async def test_unknown_queue_entry(self, client: AsyncClient):
        resp = await client.post("/api/webhooks/chaser-sent", json={"queue_id": "nope"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "QUEUE_ENTRY_NOT_FOUND"

    async def test_missing_queue_id(self, client: AsyncClient):
        resp = await client.post("/api/webhooks/chaser-sent", json={})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_sent_for_cancelled_entry_conflicts(self, client: AsyncClient):
        data = await _create(client)
        await client.post(f"/api/tasks/{data['task']['task_id']}/complete")

        resp = await client.post(
            "/api/webhooks/chaser-sent",
            json={"queue_id": data["chasers"][0]["queue_id"]},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CALLBACK_CONFLICT"


class TestChaserFailed:
    async def test_failed_keeps_counter(self, client: AsyncClient):
        data = await _create(client)
        task_id = data["task"]["task_id"]
        queue_id = data["chasers"][0]["queue_id"]

        resp = await client.post(
            "/api/webhooks/chaser-failed",
            json={"queue_id": queue_id, "error_message": "bounced"},
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "failed"
        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        assert detail["task"]["total_chasers_sent"] == 0
        assert detail["logs"][0]["status"] == "failed"

    async def test_failed_after_sent_conflicts(self, client: AsyncClient):
        queue_id = (await _create(client))["chasers"][0]["queue_id"]
        await client.post("/api/webhooks/chaser-sent", json={"queue_id": queue_id})

        resp = await client.post("/api/webhooks/chaser-failed", json={"queue_id": queue_id})
        assert resp.status_code == 409


class TestCalendarCallbacks:
    async def test_created_and_conflict(self, client: AsyncClient):
        task_id = (await _create(client))["task"]["task_id"]

        created = await client.post(
            "/api/webhooks/calendar-created",
            json={"task_id": task_id, "calendar_event_id": "evt-123"},
        )
        conflict = await client.post(
            "/api/webhooks/calendar-conflict",
            json={"task_id": task_id, "has_conflict": True, "conflict_with": "Offsite"},
        )

        assert created.json() == {
            "success": True,
            "task_id": task_id,
            "calendar_event_id": "evt-123",
        }
        assert conflict.json()["has_conflict"] is True

        task = (await client.get(f"/api/tasks/{task_id}")).json()["task"]
        assert task["has_calendar_event"] is True
        assert task["calendar"]["conflict_with"] == "Offsite"

    async def test_unknown_task(self, client: AsyncClient):
        resp = await client.post(
            "/api/webhooks/calendar-created",
            json={"task_id": "missing", "calendar_event_id": "evt"},
        )
        assert resp.status_code == 404


class TestCallbackAuth:
    """配置共享密钥后的入站回调鉴权"""

    async def test_rejected_without_credentials(self, client: AsyncClient, secured):
        resp = await client.post("/api/webhooks/chaser-sent", json={"queue_id": "q"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_bearer_accepted(self, client: AsyncClient, secured):
        queue_id = (await _create(client))["chasers"][0]["queue_id"]

        resp = await client.post(
            "/api/webhooks/chaser-sent",
            json={"queue_id": queue_id},
            headers={"Authorization": f"Bearer {SECRET}"},
        )
        assert resp.status_code == 200

    async def test_signature_accepted(self, client: AsyncClient, secured):
        queue_id = (await _create(client))["chasers"][0]["queue_id"]
        body = json.dumps({"queue_id": queue_id}).encode()

        resp = await client.post(
            "/api/webhooks/chaser-sent",
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: compute_signature(SECRET, body),
            },
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "sent"

    async def test_bad_signature_rejected(self, client: AsyncClient, secured):
        body = json.dumps({"queue_id": "q"}).encode()
        resp = await client.post(
            "/api/webhooks/chaser-sent",
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: compute_signature("wrong", body),
            },
        )
        assert resp.status_code == 401

    async def test_task_routes_not_guarded(self, client: AsyncClient, secured):
        resp = await client.get("/api/tasks")
        assert resp.status_code == 200
