"""Escalation Planner -- 由截止时间计算多层级提醒计划

纯函数，无 I/O：同样的 (task, reference_time, frontend_url) 总是得到同样的计划。
只在任务创建（或显式 replan）时运行一次，避免重复排程由调用方负责。
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from .models.enums import EscalationTier
from .models.queue import ChannelSelection, QueueEntry
from .models.task import Task
from .templates import render_message

# 各层级相对截止时间的提前量，按时间先后排列
ESCALATION_OFFSETS: dict[EscalationTier, timedelta] = {
    EscalationTier.UPCOMING: timedelta(hours=24),
    EscalationTier.REMINDER: timedelta(hours=12),
    EscalationTier.URGENT: timedelta(hours=4),
    EscalationTier.CRITICAL: timedelta(hours=1),
}

# 没有任何层级落在未来时，兜底提醒相对 reference_time 的延迟
FALLBACK_DELAY = timedelta(minutes=1)


class PlannedChaser(BaseModel):
    """Planner 输出的一条计划提醒"""

    tier: EscalationTier
    scheduled_at: datetime
    recipient: str
    subject: str
    body: str

    def to_queue_entry(self, queue_id: str, task_id: str, created_at: datetime) -> QueueEntry:
        return QueueEntry(
            queue_id=queue_id,
            task_id=task_id,
            scheduled_at=self.scheduled_at,
            recipient_email=self.recipient,
            message_subject=self.subject,
            message_body=self.body,
            escalation_tier=self.tier,
            channels=ChannelSelection(),
            created_at=created_at,
        )


def _planned(
    task: Task, tier: EscalationTier, scheduled_at: datetime, frontend_url: str
) -> PlannedChaser:
    rendered = render_message(task, tier, scheduled_at, frontend_url)
    return PlannedChaser(
        tier=tier,
        scheduled_at=scheduled_at,
        recipient=task.assignee.email,
        subject=rendered.subject,
        body=rendered.email_html,
    )


def plan_chasers(
    task: Task,
    reference_time: datetime,
    *,
    frontend_url: str,
) -> list[PlannedChaser]:
    """计算任务的提醒计划

    每个层级的计划时间为 due - offset，严格晚于 reference_time 才纳入；
    若一个都没有，则生成唯一一条 reference_time + 1 分钟的 CRITICAL 兜底提醒。
    文案以计划发送时间为基准渲染。

    Args:
        task: 已创建的任务
        reference_time: 计划基准时间（通常为任务创建时间）
        frontend_url: 前端基础 URL，用于任务链接

    Returns:
        按 scheduled_at 升序排列的 PlannedChaser 列表（至少一条）
    """
    plan = [
        _planned(task, tier, task.due_date - offset, frontend_url)
        for tier, offset in ESCALATION_OFFSETS.items()
        if task.due_date - offset > reference_time
    ]
    if not plan:
        plan.append(
            _planned(
                task,
                EscalationTier.CRITICAL,
                reference_time + FALLBACK_DELAY,
                frontend_url,
            )
        )
    plan.sort(key=lambda c: c.scheduled_at)
    return plan
