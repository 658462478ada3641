"""Escalation Planner 单元测试

测试内容：
1. 各层级纳入规则（due - offset 严格晚于基准时间）
2. 兜底提醒（reference + 1 分钟，CRITICAL）
3. 计划时间边界：严格晚于基准、严格早于截止
4. 文案以计划发送时间为基准渲染
"""

from datetime import UTC, datetime, timedelta

import pytest
from chaser.core.escalation import ESCALATION_OFFSETS, FALLBACK_DELAY, plan_chasers
from chaser.core.models import ChannelSelection, EscalationTier, QueueStatus

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
FRONTEND = "https://chaser.example.com"


class TestTierSelection:
    """层级纳入规则"""

    def test_due_in_30_hours_gets_all_four_tiers(self, make_task):
        task = make_task(timedelta(hours=30), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)

        assert [c.tier for c in plan] == [
            EscalationTier.UPCOMING,
            EscalationTier.REMINDER,
            EscalationTier.URGENT,
            EscalationTier.CRITICAL,
        ]
        assert [c.scheduled_at for c in plan] == [
            task.due_date - timedelta(hours=24),
            task.due_date - timedelta(hours=12),
            task.due_date - timedelta(hours=4),
            task.due_date - timedelta(hours=1),
        ]

    def test_due_in_20_minutes_gets_single_fallback(self, make_task):
        task = make_task(timedelta(minutes=20), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)

        assert len(plan) == 1
        assert plan[0].tier == EscalationTier.CRITICAL
        assert plan[0].scheduled_at == NOW + FALLBACK_DELAY

    @pytest.mark.parametrize(
        "due_in,expected",
        [
            (timedelta(hours=6), [EscalationTier.URGENT, EscalationTier.CRITICAL]),
            (
                timedelta(hours=13),
                [EscalationTier.REMINDER, EscalationTier.URGENT, EscalationTier.CRITICAL],
            ),
            (timedelta(hours=2), [EscalationTier.CRITICAL]),
        ],
    )
    def test_only_future_tiers_included(self, make_task, due_in, expected):
        task = make_task(due_in, now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert [c.tier for c in plan] == expected

    def test_tier_exactly_at_reference_is_excluded(self, make_task):
        # due - 4h == NOW：URGENT 不纳入（要求严格晚于基准）
        task = make_task(timedelta(hours=4), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert [c.tier for c in plan] == [EscalationTier.CRITICAL]

    def test_exactly_one_hour_gets_fallback(self, make_task):
        task = make_task(timedelta(hours=1), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert len(plan) == 1
        assert plan[0].scheduled_at == NOW + FALLBACK_DELAY

    def test_past_due_gets_fallback(self, make_task):
        task = make_task(-timedelta(hours=3), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert len(plan) == 1
        assert plan[0].tier == EscalationTier.CRITICAL
        assert plan[0].scheduled_at == NOW + timedelta(minutes=1)
        assert plan[0].subject.startswith("🚨 OVERDUE:")


class TestPlanBounds:
    """截止时间超过 1 小时时，所有计划时间落在 (reference, due) 开区间内"""

    @pytest.mark.parametrize(
        "due_in",
        [
            timedelta(hours=1, seconds=1),
            timedelta(hours=1, minutes=30),
            timedelta(hours=3, minutes=59),
            timedelta(hours=11),
            timedelta(hours=24),
            timedelta(hours=24, seconds=1),
            timedelta(days=7),
        ],
    )
    def test_scheduled_strictly_between_reference_and_due(self, make_task, due_in):
        task = make_task(due_in, now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)

        assert len(plan) >= 1
        for chaser in plan:
            assert NOW < chaser.scheduled_at < task.due_date

    @pytest.mark.parametrize("due_in", [timedelta(0), timedelta(seconds=30), timedelta(minutes=1)])
    def test_due_within_a_minute_yields_only_fallback(self, make_task, due_in):
        task = make_task(due_in, now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert [(c.tier, c.scheduled_at) for c in plan] == [
            (EscalationTier.CRITICAL, NOW + FALLBACK_DELAY)
        ]

    def test_plan_sorted_ascending(self, make_task):
        task = make_task(timedelta(days=2), now=NOW)
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        times = [c.scheduled_at for c in plan]
        assert times == sorted(times)
        assert len(plan) == len(ESCALATION_OFFSETS)


class TestPlannedContent:
    """计划文案与 QueueEntry 转换"""

    def test_content_rendered_relative_to_schedule(self, make_task):
        task = make_task(timedelta(hours=30), now=NOW, title="Budget review")
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)

        upcoming = plan[0]
        assert upcoming.subject == "Upcoming: Budget review - Due in 24 hours"
        critical = plan[-1]
        assert critical.subject.startswith("🚨 CRITICAL: Budget review")
        assert f"{FRONTEND}/tasks/{task.task_id}" in upcoming.body

    def test_recipient_is_assignee_email(self, make_task):
        task = make_task(timedelta(hours=30), now=NOW, email="carol@example.com")
        plan = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert {c.recipient for c in plan} == {"carol@example.com"}

    def test_to_queue_entry(self, make_task):
        task = make_task(timedelta(hours=30), now=NOW)
        chaser = plan_chasers(task, NOW, frontend_url=FRONTEND)[0]

        entry = chaser.to_queue_entry("q-1", task.task_id, NOW)
        assert entry.status == QueueStatus.PENDING
        assert entry.escalation_tier == chaser.tier
        assert entry.scheduled_at == chaser.scheduled_at
        assert entry.message_subject == chaser.subject
        assert entry.channels == ChannelSelection()
        assert entry.attempt_count == 0

    def test_plan_is_deterministic(self, make_task):
        task = make_task(timedelta(hours=30), now=NOW)
        first = plan_chasers(task, NOW, frontend_url=FRONTEND)
        second = plan_chasers(task, NOW, frontend_url=FRONTEND)
        assert first == second
