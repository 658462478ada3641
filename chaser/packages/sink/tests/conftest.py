"""Sink 包测试 fixtures"""

from datetime import UTC, datetime

import pytest
from chaser.sink.models import DispatchPayload


@pytest.fixture
def sample_payload() -> DispatchPayload:
    """一条典型的提醒派发 payload"""
    return DispatchPayload(
        queue_id="01JQUEUE000000000000000001",
        task_id="01JTASK0000000000000000001",
        action_type="create",
        escalation_tier=2,
        planned_tier=2,
        hours_remaining=12.0,
        recipient_email="alice@example.com",
        recipient_name="Alice",
        subject="Reminder: Budget review - Due in 12 hours",
        body="<p>Hi Alice</p>",
        task_title="Budget review",
        task_priority="high",
        task_due_date="Monday, March 2, 2026 at 9:00 PM UTC",
        task_link="http://localhost:3000/tasks/01JTASK0000000000000000001",
        event_start=datetime(2026, 3, 2, 20, 30, tzinfo=UTC),
        event_end=datetime(2026, 3, 2, 21, 30, tzinfo=UTC),
        callback_url="http://localhost:8000/api/webhooks/chaser-sent",
    )
