"""QueueDispatcher -- chaser 派发循环

每个 dispatch cycle：
1. 选取到期 pending 条目（按 scheduled_at 升序，最多 batch_size 条）
2. 任务已完成的条目直接 cancelled，不派发
3. 逐条（顺序）重新渲染文案并提交给 sink，单次调用严格超时
4. sink 受理 -> triggered；失败 -> 保持 pending，记录尝试时间（可选退避 / 上限）
5. 单条处理中的意外异常同样按失败尝试记录，不影响同批其余条目

asyncio.Lock 防止周期任务与手动触发重叠执行。
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import structlog
from chaser.core.exceptions import ChaserError
from chaser.core.models import ActionType, QueueEntry, QueueStatus, Task, TaskStatus
from chaser.core.store import StoreGroup
from chaser.sink import DispatchSink, SinkError
from pydantic import BaseModel, Field

from .callback_service import DeliveryCallbackHandler
from .payload_builder import PayloadBuilder

log = structlog.get_logger()


class DispatchOutcome(StrEnum):
    """单条派发结果"""

    TRIGGERED = "triggered"
    # 可重试失败，条目保持 pending
    RETRY = "retry"
    # 达到最大尝试次数，条目已置为 failed
    EXHAUSTED = "exhausted"
    # 任务已完成，条目已取消
    CANCELLED = "cancelled"
    # 派发期间条目被并发修改（如任务完成），结果未写入
    SUPERSEDED = "superseded"
    # 未配置 sink
    NO_SINK = "no_sink"


class DispatchCycleResult(BaseModel):
    """一次 dispatch cycle 的统计"""

    skipped: bool = Field(default=False, description="已有 cycle 在运行，本次跳过")
    sink_configured: bool = Field(default=True)
    selected: int = Field(default=0)
    triggered: int = Field(default=0)
    retry: int = Field(default=0)
    exhausted: int = Field(default=0)
    cancelled: int = Field(default=0)
    superseded: int = Field(default=0)

    def record(self, outcome: DispatchOutcome) -> None:
        if outcome is DispatchOutcome.NO_SINK:
            self.sink_configured = False
            return
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class QueueDispatcher:
    """chaser 派发器"""

    def __init__(
        self,
        store_group: StoreGroup,
        sink: DispatchSink | None,
        callback_handler: DeliveryCallbackHandler,
        payload_builder: PayloadBuilder,
        *,
        timeout_s: float = 10.0,
        batch_size: int = 5,
        max_attempts: int = 0,
        retry_backoff_s: float = 0.0,
        max_backoff_s: float = 3600.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            store_group: Store 实例组
            sink: 外部 dispatch sink，None 表示未配置（cycle 直接跳过）
            callback_handler: 重试耗尽时走失败回调路径
            payload_builder: payload 构建器
            timeout_s: 单次 sink 调用超时（秒）
            batch_size: 每个 cycle 最多处理条数
            max_attempts: 最大尝试次数，0 表示不限
            retry_backoff_s: 指数退避基数（秒），0 表示下一轮直接重试
            max_backoff_s: 退避上限（秒）
            clock: 当前时间来源
        """
        self._stores = store_group
        self._sink = sink
        self._callbacks = callback_handler
        self.payload_builder = payload_builder
        self._timeout_s = timeout_s
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._retry_backoff_s = retry_backoff_s
        self._max_backoff_s = max_backoff_s
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def sink(self) -> DispatchSink | None:
        return self._sink

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self, now: datetime | None = None) -> DispatchCycleResult:
        """执行一次 dispatch cycle；已有 cycle 运行时直接跳过"""
        if self._lock.locked():
            log.info("dispatch_cycle_skipped", reason="already_running")
            return DispatchCycleResult(skipped=True)

        async with self._lock:
            return await self._run_cycle(now or self._clock())

    async def dispatch_now(self, queue_id: str) -> DispatchOutcome | None:
        """立即派发单条 pending 条目（手动 nudge）

        与 cycle 互斥：cycle 运行中时等待其结束，而不是跳过。

        Returns:
            派发结果；条目不存在或已不是 pending 时返回 None
        """
        async with self._lock:
            row = await self._stores.queue_store.get_entry_with_task(queue_id)
            if row is None:
                return None
            entry, task = row
            if entry.status != QueueStatus.PENDING:
                return None
            return await self._process_guarded(entry, task, self._clock())

    async def send_calendar_action(
        self,
        task: Task,
        action: ActionType,
        event_start: datetime | None = None,
        event_end: datetime | None = None,
    ) -> bool:
        """尽力通知 sink 删除 / 更新日历事件

        失败只记 warning，不影响调用方的主操作。

        Returns:
            True 表示 sink 已受理
        """
        if self._sink is None:
            log.info("calendar_sync_skipped", task_id=task.task_id, reason="sink_not_configured")
            return False

        payload = self.payload_builder.for_calendar(
            task, action, self._clock(), event_start=event_start, event_end=event_end
        )
        try:
            await asyncio.wait_for(self._sink.dispatch(payload), timeout=self._timeout_s)
        except (SinkError, TimeoutError) as e:
            log.warning(
                "calendar_sync_failed",
                task_id=task.task_id,
                action_type=action.value,
                error=str(e) or type(e).__name__,
            )
            return False

        log.info("calendar_sync_sent", task_id=task.task_id, action_type=action.value)
        return True

    async def _run_cycle(self, now: datetime) -> DispatchCycleResult:
        result = DispatchCycleResult()
        if self._sink is None:
            log.warning("dispatch_cycle_no_sink", reason="sink_not_configured")
            result.sink_configured = False
            return result

        rows = await self._stores.queue_store.query_due_entries(self._batch_size, now)
        result.selected = len(rows)
        if not rows:
            log.debug("dispatch_cycle_idle")
            return result

        log.info("dispatch_cycle_started", selected=len(rows))
        for entry, task in rows:
            outcome = await self._process_guarded(entry, task, now)
            result.record(outcome)

        log.info("dispatch_cycle_completed", **result.model_dump(exclude={"skipped"}))
        return result

    async def _process_guarded(
        self, entry: QueueEntry, task: Task, now: datetime
    ) -> DispatchOutcome:
        """单条处理的异常隔离：任何意外异常都按一次失败尝试记录，不中断整批"""
        try:
            return await self._process(entry, task, now)
        except Exception as e:
            log.error(
                "chaser_dispatch_crashed",
                queue_id=entry.queue_id,
                task_id=entry.task_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._stores.conn.rollback()
            return await self._on_transient_failure(entry, now, e)

    async def _process(
        self, entry: QueueEntry, task: Task, now: datetime
    ) -> DispatchOutcome:
        if task.status == TaskStatus.COMPLETED:
            await self._stores.queue_store.mark_cancelled(entry.queue_id)
            await self._stores.conn.commit()
            log.info(
                "chaser_skipped_task_completed",
                queue_id=entry.queue_id,
                task_id=task.task_id,
            )
            return DispatchOutcome.CANCELLED

        if self._sink is None:
            return DispatchOutcome.NO_SINK

        payload = self.payload_builder.for_entry(entry, task, now)
        try:
            await asyncio.wait_for(self._sink.dispatch(payload), timeout=self._timeout_s)
        except (SinkError, TimeoutError) as e:
            return await self._on_transient_failure(entry, now, e)

        applied = await self._stores.queue_store.mark_triggered(entry.queue_id, now)
        await self._stores.conn.commit()
        if not applied:
            # 派发期间条目已被取消或已收到回调，不覆盖
            log.warning(
                "chaser_trigger_superseded",
                queue_id=entry.queue_id,
                task_id=task.task_id,
            )
            return DispatchOutcome.SUPERSEDED

        log.info(
            "chaser_triggered",
            queue_id=entry.queue_id,
            task_id=task.task_id,
            escalation_tier=payload.escalation_tier,
            action_type=payload.action_type,
        )
        return DispatchOutcome.TRIGGERED

    def _next_attempt_at(self, entry: QueueEntry, now: datetime) -> datetime | None:
        if self._retry_backoff_s <= 0:
            return None
        delay = min(self._retry_backoff_s * (2**entry.attempt_count), self._max_backoff_s)
        return now + timedelta(seconds=delay)

    async def _on_transient_failure(
        self, entry: QueueEntry, now: datetime, error: Exception
    ) -> DispatchOutcome:
        error_text = str(error) or type(error).__name__
        next_attempt_at = self._next_attempt_at(entry, now)
        attempts = await self._stores.queue_store.record_failed_attempt(
            entry.queue_id, now, next_attempt_at
        )
        await self._stores.conn.commit()

        log.warning(
            "chaser_dispatch_failed",
            queue_id=entry.queue_id,
            task_id=entry.task_id,
            error=error_text,
            error_type=type(error).__name__,
            attempt_count=attempts,
            next_attempt_at=next_attempt_at.isoformat() if next_attempt_at else None,
        )
        if attempts is None:
            return DispatchOutcome.SUPERSEDED

        if self._max_attempts and attempts >= self._max_attempts:
            try:
                await self._callbacks.on_dispatch_failed(
                    entry.queue_id,
                    f"Dispatch attempts exhausted after {attempts} tries: {error_text}",
                )
            except ChaserError as e:
                log.warning(
                    "chaser_exhaust_not_applied",
                    queue_id=entry.queue_id,
                    error=str(e),
                )
                return DispatchOutcome.SUPERSEDED
            return DispatchOutcome.EXHAUSTED

        return DispatchOutcome.RETRY
