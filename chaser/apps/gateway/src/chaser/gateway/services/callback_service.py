"""DeliveryCallbackHandler -- 外部 sink 异步回调处理

chaser-sent / chaser-failed 推进 QueueEntry 终态：
1. 状态变更为 compare-and-swap（pending|triggered -> sent/failed），单独提交
2. 相同结果的重复回调按 duplicate 确认，不再写日志、不再计数
3. 与终态矛盾的回调抛出 CallbackConflictError
4. 次要写入（DeliveryLog、Task 计数）失败只记日志，不回滚主状态

calendar-conflict / calendar-created 只更新 Task 的日历字段。
"""

from collections.abc import Callable
from datetime import UTC, datetime

import aiosqlite
import structlog
from chaser.core.exceptions import (
    CallbackConflictError,
    QueueEntryNotFoundError,
    TaskNotFoundError,
)
from chaser.core.models import (
    CalendarConflictPayload,
    DeliveryLog,
    DeliveryStatus,
    QueueEntry,
    QueueStatus,
    validate_queue_transition,
)
from chaser.core.store import StoreGroup
from pydantic import BaseModel, Field
from ulid import ULID

log = structlog.get_logger()


class CallbackResult(BaseModel):
    """回调处理结果"""

    queue_id: str
    status: QueueStatus = Field(description="处理后的条目状态")
    duplicate: bool = Field(default=False, description="是否为重复回调")
    log_recorded: bool = Field(default=False, description="是否写入了 DeliveryLog")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DeliveryCallbackHandler:
    """投递结果回调处理器"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._stores = store_group
        self._clock = clock

    async def on_dispatch_succeeded(
        self,
        queue_id: str,
        sent_at: datetime | None = None,
        execution_id: str | None = None,
    ) -> CallbackResult:
        """sink 报告送达

        Raises:
            QueueEntryNotFoundError: 条目不存在
            CallbackConflictError: 条目已处于 failed / cancelled
        """
        entry = await self._require_entry(queue_id)
        sent_at = sent_at or self._clock()

        duplicate = await self._check_transition(entry, QueueStatus.SENT)
        if duplicate is not None:
            return duplicate

        applied = await self._stores.queue_store.mark_sent(queue_id, sent_at)
        await self._stores.conn.commit()
        if not applied:
            # 读到 entry 之后状态被并发修改
            return await self._resolve_race(queue_id, QueueStatus.SENT)

        log.info(
            "chaser_sent",
            queue_id=queue_id,
            task_id=entry.task_id,
            execution_id=execution_id,
        )

        recorded = await self._append_log(
            entry,
            DeliveryStatus.SENT,
            sent_at=sent_at,
            body=entry.message_body,
            execution_id=execution_id,
        )
        await self._increment_task_counter(entry, sent_at)

        return CallbackResult(
            queue_id=queue_id,
            status=QueueStatus.SENT,
            log_recorded=recorded,
        )

    async def on_dispatch_failed(
        self,
        queue_id: str,
        error_message: str | None = None,
    ) -> CallbackResult:
        """sink 报告投递失败（或调度器重试耗尽）

        Task 计数器不变。

        Raises:
            QueueEntryNotFoundError: 条目不存在
            CallbackConflictError: 条目已处于 sent / cancelled
        """
        entry = await self._require_entry(queue_id)
        now = self._clock()

        duplicate = await self._check_transition(entry, QueueStatus.FAILED)
        if duplicate is not None:
            return duplicate

        applied = await self._stores.queue_store.mark_failed(queue_id, now)
        await self._stores.conn.commit()
        if not applied:
            return await self._resolve_race(queue_id, QueueStatus.FAILED)

        error_text = error_message or "Unknown error"
        log.warning(
            "chaser_failed",
            queue_id=queue_id,
            task_id=entry.task_id,
            error=error_text,
        )

        recorded = await self._append_log(
            entry,
            DeliveryStatus.FAILED,
            sent_at=now,
            body=f"{entry.message_body}\n\n[ERROR: {error_text}]",
        )
        return CallbackResult(
            queue_id=queue_id,
            status=QueueStatus.FAILED,
            log_recorded=recorded,
        )

    async def on_calendar_conflict(self, payload: CalendarConflictPayload) -> None:
        """记录日程冲突检测结果"""
        updated = await self._stores.task_store.set_calendar_fields(
            payload.task_id,
            {
                "has_conflict": payload.has_conflict,
                "conflict_with": payload.conflict_with,
                "conflict_end_time": payload.conflict_end_time,
            },
            self._clock(),
        )
        if not updated:
            raise TaskNotFoundError(payload.task_id)
        await self._stores.conn.commit()
        log.info(
            "calendar_conflict_recorded",
            task_id=payload.task_id,
            has_conflict=payload.has_conflict,
        )

    async def on_calendar_created(self, task_id: str, calendar_event_id: str) -> None:
        """记录外部日历事件 ID，后续 chaser 改为 notify"""
        updated = await self._stores.task_store.set_calendar_fields(
            task_id,
            {"event_id": calendar_event_id},
            self._clock(),
        )
        if not updated:
            raise TaskNotFoundError(task_id)
        await self._stores.conn.commit()
        log.info("calendar_event_recorded", task_id=task_id, calendar_event_id=calendar_event_id)

    async def _require_entry(self, queue_id: str) -> QueueEntry:
        entry = await self._stores.queue_store.get_entry(queue_id)
        if entry is None:
            raise QueueEntryNotFoundError(queue_id)
        return entry

    async def _check_transition(
        self, entry: QueueEntry, target: QueueStatus
    ) -> CallbackResult | None:
        """状态已是目标终态返回 duplicate 结果；非法流转抛出冲突；合法返回 None"""
        if entry.status == target:
            log.info(
                "callback_duplicate_ignored",
                queue_id=entry.queue_id,
                status=target.value,
            )
            return CallbackResult(queue_id=entry.queue_id, status=target, duplicate=True)
        if not validate_queue_transition(entry.status, target):
            log.warning(
                "callback_conflict",
                queue_id=entry.queue_id,
                current_status=entry.status.value,
                outcome=target.value,
            )
            raise CallbackConflictError(entry.queue_id, entry.status.value, target.value)
        return None

    async def _resolve_race(self, queue_id: str, target: QueueStatus) -> CallbackResult:
        entry = await self._require_entry(queue_id)
        result = await self._check_transition(entry, target)
        if result is None:
            # compare-and-swap 失败但重读后仍可流转，说明条目状态在两次读取间来回变化
            raise CallbackConflictError(queue_id, entry.status.value, target.value)
        return result

    async def _append_log(
        self,
        entry: QueueEntry,
        status: DeliveryStatus,
        sent_at: datetime,
        body: str,
        execution_id: str | None = None,
    ) -> bool:
        """写入 DeliveryLog（次要写入，失败只记日志）"""
        delivery_log = DeliveryLog(
            log_id=str(ULID()),
            task_id=entry.task_id,
            queue_id=entry.queue_id,
            sent_at=sent_at,
            status=status,
            recipient_email=entry.recipient_email,
            message_subject=entry.message_subject,
            message_body=body,
            execution_id=execution_id,
            created_at=self._clock(),
        )
        try:
            inserted = await self._stores.log_store.insert_delivery_log(delivery_log)
            await self._stores.conn.commit()
        except aiosqlite.Error as e:
            await self._stores.conn.rollback()
            log.error(
                "delivery_log_write_failed",
                queue_id=entry.queue_id,
                task_id=entry.task_id,
                status=status.value,
                error=str(e),
            )
            return False
        if not inserted:
            log.info("delivery_log_duplicate", queue_id=entry.queue_id, status=status.value)
        return inserted

    async def _increment_task_counter(self, entry: QueueEntry, sent_at: datetime) -> None:
        """原子自增 Task 计数（次要写入，失败只记日志）"""
        try:
            updated = await self._stores.task_store.increment_chaser_count(
                entry.task_id, sent_at
            )
            await self._stores.conn.commit()
        except aiosqlite.Error as e:
            await self._stores.conn.rollback()
            log.error(
                "task_counter_update_failed",
                queue_id=entry.queue_id,
                task_id=entry.task_id,
                error=str(e),
            )
            return
        if not updated:
            log.warning("task_counter_target_missing", task_id=entry.task_id)
