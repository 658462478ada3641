"""TaskService -- 任务生命周期业务逻辑

任务创建流程：
1. TaskDraft 已在入口完成校验
2. Escalation Planner 计算提醒计划（纯计算，先于任何写入）
3. 写入 Task 并提交，再写入 QueueEntry（写入失败只记日志，任务照常返回）

生命周期钩子：
- mark_completed: pending -> completed，同事务取消 pending chaser，尽力通知 sink 删除日历事件
- reschedule: 默认保留现有 chaser；replan=True 时取消旧计划并从当前时间重新计划
"""

from collections.abc import Callable
from datetime import UTC, datetime, time

import aiosqlite
import structlog
from chaser.core.config import UPCOMING_CHASERS_LIMIT, get_frontend_url
from chaser.core.escalation import plan_chasers
from chaser.core.exceptions import TaskAlreadyCompletedError, TaskNotFoundError
from chaser.core.models import (
    ActionType,
    AssigneeInfo,
    ChannelSelection,
    DeliveryLog,
    EscalationTier,
    QueueEntry,
    QueueStatus,
    Task,
    TaskDraft,
    TaskStatus,
    TaskUpdate,
    validate_task_transition,
)
from chaser.core.store import StoreGroup
from chaser.core.store.transaction import (
    commit_chasers,
    commit_task,
    complete_task_and_cancel_chasers,
    replace_pending_chasers,
)
from chaser.core.templates import render_message
from pydantic import BaseModel, Field
from ulid import ULID

from .dispatcher import DispatchOutcome, QueueDispatcher

log = structlog.get_logger()

# TaskUpdate 字段 -> store.update_task 键
_UPDATE_FIELD_MAP = {
    "title": "title",
    "priority": "priority",
    "assignee_email": "assignee_email",
    "assignee_name": "assignee_name",
    "phone_number": "assignee_phone",
    "slack_channel": "assignee_slack_channel",
    "enable_call": "assignee_enable_call",
}

# 显式传 None 时表示“不修改”的字段（必填字段不可清空）
_REQUIRED_FIELDS = {"title", "priority", "assignee_email", "enable_call"}


class TaskDetail(BaseModel):
    """任务详情：任务 + 投递日志 + pending chaser"""

    task: Task
    logs: list[DeliveryLog] = Field(default_factory=list)
    pending_chasers: list[QueueEntry] = Field(default_factory=list)


class CompletionResult(BaseModel):
    task: Task
    transitioned: bool = Field(description="本次调用是否完成了 pending -> completed")
    cancelled_chasers: int = Field(default=0)


class RescheduleResult(BaseModel):
    task: Task
    replanned: bool = Field(default=False)
    cancelled_chasers: int = Field(default=0)
    new_chasers: list[QueueEntry] = Field(default_factory=list)


class NudgeResult(BaseModel):
    entry: QueueEntry
    outcome: DispatchOutcome | None = Field(
        default=None, description="立即派发结果；None 表示条目已被其他流程处理"
    )


class DashboardStats(BaseModel):
    total_tasks: int
    pending_tasks: int
    chasers_sent_today: int


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        dispatcher: QueueDispatcher,
        frontend_url: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._stores = store_group
        self._dispatcher = dispatcher
        self._frontend_url = frontend_url or get_frontend_url()
        self._clock = clock

    async def create_task(self, draft: TaskDraft) -> tuple[Task, list[QueueEntry]]:
        """创建任务并生成提醒计划

        Returns:
            (task, chasers)；chaser 写入失败时 chasers 为空列表
        """
        now = self._clock()
        task = Task(
            task_id=str(ULID()),
            title=draft.title,
            assignee=AssigneeInfo(
                email=draft.assignee_email,
                name=draft.assignee_name,
                phone=draft.phone_number,
                slack_channel=draft.slack_channel,
                enable_call=draft.enable_call,
            ),
            due_date=draft.due_date,
            priority=draft.priority,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        # 先算计划再写任务：计划失败时不留下没有提醒的任务
        entries = self._plan_entries(task, now)
        await commit_task(self._stores.conn, self._stores.task_store, task)

        try:
            await commit_chasers(self._stores.conn, self._stores.queue_store, entries)
        except aiosqlite.Error as e:
            log.error(
                "chaser_planning_failed",
                task_id=task.task_id,
                error=str(e),
            )
            return task, []

        log.info(
            "task_created",
            task_id=task.task_id,
            chaser_count=len(entries),
            first_chaser_at=entries[0].scheduled_at.isoformat(),
        )
        return task, entries

    async def list_tasks(self, status: str | None = None) -> list[tuple[Task, int]]:
        """任务列表（新建在前）及每个任务的 pending chaser 数"""
        return await self._stores.task_store.list_tasks_with_pending_count(status)

    async def get_task(self, task_id: str) -> Task:
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def get_task_detail(self, task_id: str) -> TaskDetail:
        task = await self.get_task(task_id)
        logs = await self._stores.log_store.list_logs_for_task(task_id)
        pending = await self._stores.queue_store.list_entries_for_task(
            task_id, QueueStatus.PENDING
        )
        return TaskDetail(task=task, logs=logs, pending_chasers=pending)

    async def update_task(self, task_id: str, update: TaskUpdate) -> Task:
        """局部更新

        - 普通字段直接写入
        - due_date 变化走 reschedule（保留现有 chaser）
        - status=completed 走 mark_completed；completed -> pending 被拒绝

        Raises:
            TaskNotFoundError: 任务不存在
            TaskAlreadyCompletedError: 试图回退已完成任务，或改期已完成任务
        """
        task = await self.get_task(task_id)
        provided = update.model_fields_set

        if "status" in provided and update.status is not None and update.status != task.status:
            if not validate_task_transition(task.status, update.status):
                raise TaskAlreadyCompletedError(
                    task_id, f"Task {task_id} is completed and cannot be reopened"
                )

        # 已完成任务不能改期：在任何写入之前拒绝，避免部分字段已落库
        due_changed = (
            "due_date" in provided
            and update.due_date is not None
            and update.due_date != task.due_date
        )
        if due_changed and task.status == TaskStatus.COMPLETED:
            raise TaskAlreadyCompletedError(task_id, f"Task {task_id} is completed")

        changes = {}
        for field, key in _UPDATE_FIELD_MAP.items():
            if field not in provided:
                continue
            value = getattr(update, field)
            if value is None and field in _REQUIRED_FIELDS:
                continue
            changes[key] = value

        if changes:
            updated = await self._stores.task_store.update_task(task_id, changes, self._clock())
            await self._stores.conn.commit()
            if updated is None:
                raise TaskNotFoundError(task_id)
            task = updated
            log.info("task_updated", task_id=task_id, fields=sorted(changes))

        if due_changed:
            task = (await self.reschedule(task_id, update.due_date)).task

        if update.status == TaskStatus.COMPLETED:
            task = (await self.mark_completed(task_id)).task

        return task

    async def mark_completed(self, task_id: str) -> CompletionResult:
        """完成任务并取消其 pending chaser（幂等）

        triggered 状态的条目不受影响，其后续回调照常生效。
        """
        await self.get_task(task_id)
        transitioned, cancelled = await complete_task_and_cancel_chasers(
            self._stores.conn,
            self._stores.task_store,
            self._stores.queue_store,
            task_id,
            self._clock(),
        )
        task = await self.get_task(task_id)

        if transitioned:
            log.info("task_completed", task_id=task_id, cancelled_chasers=cancelled)
            if task.has_calendar_event:
                await self._dispatcher.send_calendar_action(task, ActionType.DELETE)
        else:
            log.info("task_already_completed", task_id=task_id, cancelled_chasers=cancelled)

        return CompletionResult(
            task=task,
            transitioned=transitioned,
            cancelled_chasers=cancelled,
        )

    async def reschedule(
        self,
        task_id: str,
        new_due: datetime,
        replan: bool = False,
        event_end: datetime | None = None,
    ) -> RescheduleResult:
        """修改截止时间

        默认不重新计算已有 chaser（派发时会按新的剩余时间重新定级）；
        replan=True 时取消 pending chaser 并从当前时间重新计划。

        Raises:
            TaskNotFoundError: 任务不存在
            TaskAlreadyCompletedError: 任务已完成
        """
        task = await self.get_task(task_id)
        if task.status == TaskStatus.COMPLETED:
            raise TaskAlreadyCompletedError(task_id, f"Task {task_id} is completed")

        now = self._clock()
        updated = await self._stores.task_store.update_task(task_id, {"due_date": new_due}, now)
        await self._stores.conn.commit()
        if updated is None:
            raise TaskNotFoundError(task_id)
        task = updated

        result = RescheduleResult(task=task)
        if replan:
            entries = self._plan_entries(task, now)
            result.cancelled_chasers = await replace_pending_chasers(
                self._stores.conn, self._stores.queue_store, task_id, entries
            )
            result.replanned = True
            result.new_chasers = entries

        log.info(
            "task_rescheduled",
            task_id=task_id,
            due_date=new_due.isoformat(),
            replan=replan,
            cancelled_chasers=result.cancelled_chasers,
            new_chasers=len(result.new_chasers),
        )

        if task.has_calendar_event or event_end is not None:
            await self._dispatcher.send_calendar_action(
                task, ActionType.UPDATE, event_start=new_due, event_end=event_end
            )
        return result

    async def update_timeline(
        self,
        task_id: str,
        event_start: datetime,
        event_end: datetime | None = None,
    ) -> Task:
        """以日历事件开始时间作为新的截止时间，并同步日历"""
        result = await self.reschedule(
            task_id, event_start, event_end=event_end or event_start
        )
        return result.task

    async def send_nudge(self, task_id: str, channels: ChannelSelection) -> NudgeResult:
        """插入一条 tier 0 chaser 并立即派发"""
        task = await self.get_task(task_id)
        if task.status == TaskStatus.COMPLETED:
            raise TaskAlreadyCompletedError(task_id, f"Task {task_id} is completed")

        now = self._clock()
        rendered = render_message(task, EscalationTier.NUDGE, now, self._frontend_url, channels)
        entry = QueueEntry(
            queue_id=str(ULID()),
            task_id=task_id,
            scheduled_at=now,
            recipient_email=task.assignee.email,
            message_subject=rendered.subject,
            message_body=rendered.email_html,
            escalation_tier=EscalationTier.NUDGE,
            channels=channels,
            created_at=now,
        )
        await commit_chasers(self._stores.conn, self._stores.queue_store, [entry])
        outcome = await self._dispatcher.dispatch_now(entry.queue_id)
        log.info(
            "nudge_sent",
            task_id=task_id,
            queue_id=entry.queue_id,
            outcome=outcome.value if outcome else None,
        )
        return NudgeResult(entry=entry, outcome=outcome)

    async def list_upcoming(
        self, limit: int = UPCOMING_CHASERS_LIMIT
    ) -> list[tuple[QueueEntry, Task]]:
        return await self._stores.queue_store.list_upcoming(limit)

    async def get_stats(self) -> DashboardStats:
        """仪表盘统计：任务总数、pending 任务数、今日（UTC）已送达 chaser 数"""
        today_start = datetime.combine(self._clock().date(), time.min, tzinfo=UTC)
        return DashboardStats(
            total_tasks=await self._stores.task_store.count_tasks(),
            pending_tasks=await self._stores.task_store.count_tasks(TaskStatus.PENDING.value),
            chasers_sent_today=await self._stores.log_store.count_sent_since(today_start),
        )

    def _plan_entries(self, task: Task, now: datetime) -> list[QueueEntry]:
        plan = plan_chasers(task, now, frontend_url=self._frontend_url)
        return [
            planned.to_queue_entry(str(ULID()), task.task_id, now) for planned in plan
        ]
