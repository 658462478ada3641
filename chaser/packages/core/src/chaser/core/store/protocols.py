"""Store Protocol 接口定义

定义 TaskStore、QueueStore、DeliveryLogStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
状态与计数器的修改必须是原子的（SQL 自增 / compare-and-swap）。
"""

from datetime import datetime
from typing import Any, Protocol

from ..models.delivery_log import DeliveryLog
from ..models.enums import QueueStatus
from ..models.queue import QueueEntry
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def insert_task(self, task: Task) -> Task:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks_with_pending_count(
        self, status: str | None = None
    ) -> list[tuple[Task, int]]:
        """查询任务列表及每个任务的 pending chaser 数"""
        ...

    async def update_task(
        self,
        task_id: str,
        changes: dict[str, Any],
        updated_at: datetime,
    ) -> Task | None:
        """局部更新任务字段，不存在时返回 None"""
        ...

    async def mark_completed(self, task_id: str, updated_at: datetime) -> bool:
        """pending -> completed，返回是否发生了流转"""
        ...

    async def set_calendar_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
    ) -> bool:
        """更新日历相关字段"""
        ...

    async def increment_chaser_count(self, task_id: str, sent_at: datetime) -> bool:
        """原子自增已送达计数"""
        ...

    async def count_tasks(self, status: str | None = None) -> int:
        ...


class QueueStore(Protocol):
    """QueueEntry 存储接口"""

    async def insert_entries(self, entries: list[QueueEntry]) -> list[QueueEntry]:
        """批量插入 QueueEntry"""
        ...

    async def get_entry(self, queue_id: str) -> QueueEntry | None:
        ...

    async def get_entry_with_task(self, queue_id: str) -> tuple[QueueEntry, Task] | None:
        ...

    async def query_due_entries(
        self, limit: int, now: datetime
    ) -> list[tuple[QueueEntry, Task]]:
        """到期 pending 条目（按 scheduled_at 升序）及所属 Task"""
        ...

    async def update_entry(
        self,
        queue_id: str,
        changes: dict[str, Any],
        expected_statuses: set[QueueStatus] | None = None,
    ) -> bool:
        """局部更新（可选 compare-and-swap 条件）"""
        ...

    async def mark_triggered(self, queue_id: str, attempted_at: datetime) -> bool:
        ...

    async def record_failed_attempt(
        self,
        queue_id: str,
        attempted_at: datetime,
        next_attempt_at: datetime | None = None,
    ) -> int | None:
        ...

    async def mark_sent(self, queue_id: str, sent_at: datetime) -> bool:
        ...

    async def mark_failed(self, queue_id: str, failed_at: datetime) -> bool:
        ...

    async def mark_cancelled(self, queue_id: str) -> bool:
        ...

    async def cancel_pending_entries_for_task(self, task_id: str) -> int:
        """取消任务下所有 pending 条目，返回数量"""
        ...

    async def list_entries_for_task(
        self, task_id: str, status: QueueStatus | None = None
    ) -> list[QueueEntry]:
        ...

    async def list_upcoming(self, limit: int) -> list[tuple[QueueEntry, Task]]:
        ...


class DeliveryLogStore(Protocol):
    """DeliveryLog 存储接口

    日志表 append-only：只允许插入，不允许更新或删除。
    """

    async def insert_delivery_log(self, log: DeliveryLog) -> bool:
        """追加日志，重复结果返回 False"""
        ...

    async def list_logs_for_task(self, task_id: str) -> list[DeliveryLog]:
        ...

    async def count_sent_since(self, since: datetime) -> int:
        ...
