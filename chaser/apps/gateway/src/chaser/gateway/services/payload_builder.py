"""PayloadBuilder -- 组装发送给外部 sink 的 DispatchPayload

派发时按当前剩余时间重新渲染文案（任务可能已改期），
并计算日历窗口与回调地址。
"""

from datetime import datetime, timedelta

from chaser.core.models import ActionType, EscalationTier, QueueEntry, Task
from chaser.core.templates import (
    format_due_date,
    format_priority,
    render_message,
    task_link,
    tier_for_hours_remaining,
)
from chaser.sink import DispatchPayload

# 日历事件窗口（相对截止时间）
EVENT_LEAD = timedelta(minutes=30)
EVENT_TAIL = timedelta(minutes=30)
EVENT_CHECK_LEAD = timedelta(hours=1)
# 当前时间段忙闲检查窗口
BUSY_CHECK_WINDOW = timedelta(minutes=1)

CALLBACK_PATHS = {
    "callback_url": "/api/webhooks/chaser-sent",
    "failure_callback_url": "/api/webhooks/chaser-failed",
    "conflict_callback_url": "/api/webhooks/calendar-conflict",
    "event_created_callback_url": "/api/webhooks/calendar-created",
}


class PayloadBuilder:
    """DispatchPayload 构建器"""

    def __init__(self, frontend_url: str, public_base_url: str) -> None:
        self.frontend_url = frontend_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")

    def effective_tier(self, entry: QueueEntry, task: Task, now: datetime) -> EscalationTier:
        """手动 nudge 保持 tier 0，其余按剩余小时数重新定级"""
        if entry.escalation_tier == EscalationTier.NUDGE:
            return EscalationTier.NUDGE
        hours = (task.due_date - now).total_seconds() / 3600
        return tier_for_hours_remaining(hours)

    def for_entry(self, entry: QueueEntry, task: Task, now: datetime) -> DispatchPayload:
        """为一条 QueueEntry 构建提醒派发 payload"""
        tier = self.effective_tier(entry, task, now)
        rendered = render_message(task, tier, now, self.frontend_url, entry.channels)
        action = ActionType.NOTIFY if task.has_calendar_event else ActionType.CREATE

        return DispatchPayload(
            queue_id=entry.queue_id,
            action_type=action.value,
            escalation_tier=int(tier),
            planned_tier=int(entry.escalation_tier),
            hours_remaining=(task.due_date - now).total_seconds() / 3600,
            recipient_email=entry.recipient_email if entry.channels.email else "",
            subject=rendered.subject if entry.channels.email else "",
            body=rendered.email_html,
            sms_message=rendered.sms,
            call_message=rendered.call,
            slack_message=rendered.slack,
            **self._task_fields(task, now),
        )

    def for_calendar(
        self,
        task: Task,
        action: ActionType,
        now: datetime,
        event_start: datetime | None = None,
        event_end: datetime | None = None,
    ) -> DispatchPayload:
        """日历 delete / update 动作 payload（不关联 QueueEntry）"""
        fields = self._task_fields(task, now)
        if event_start is not None:
            fields["event_start"] = event_start
            fields["event_end"] = event_end or event_start + EVENT_LEAD + EVENT_TAIL
        return DispatchPayload(
            queue_id=None,
            action_type=action.value,
            recipient_email=task.assignee.email,
            **fields,
        )

    def _task_fields(self, task: Task, now: datetime) -> dict:
        due = task.due_date
        due_text = format_due_date(due)
        priority = format_priority(task.priority)
        assignee = task.assignee
        fields = {
            "task_id": task.task_id,
            "calendar_event_id": task.calendar.event_id,
            "recipient_name": assignee.name or "there",
            "recipient_phone": assignee.phone,
            "enable_call": assignee.enable_call,
            "slack_channel": assignee.slack_channel,
            "task_title": task.title,
            "task_priority": task.priority.value,
            "task_due_date": due_text,
            "task_link": task_link(self.frontend_url, task.task_id),
            "event_start": due - EVENT_LEAD,
            "event_end": due + EVENT_TAIL,
            "event_check_start": due - EVENT_CHECK_LEAD,
            "event_check_end": due + EVENT_TAIL,
            "event_summary": f"Task: {task.title}",
            "event_description": (
                f"Priority: {priority}\nAssignee: {assignee.name or 'Unknown'}\n\nDue: {due_text}"
            ),
            "current_time_start": now,
            "current_time_end": now + BUSY_CHECK_WINDOW,
        }
        for name, path in CALLBACK_PATHS.items():
            fields[name] = f"{self.public_base_url}{path}"
        return fields
