"""Chaser Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .delivery_log import DeliveryLog
from .draft import TaskDraft, TaskUpdate, ensure_utc, validate_due_date
from .enums import (
    QUEUE_TERMINAL_STATES,
    TASK_TRANSITIONS,
    VALID_QUEUE_TRANSITIONS,
    ActionType,
    Channel,
    DeliveryStatus,
    EscalationTier,
    QueueStatus,
    TaskPriority,
    TaskStatus,
    validate_queue_transition,
    validate_task_transition,
)
from .payloads import (
    CalendarConflictPayload,
    CalendarCreatedPayload,
    ChaserFailedPayload,
    ChaserSentPayload,
)
from .queue import ChannelSelection, QueueEntry
from .task import AssigneeInfo, CalendarInfo, Task

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskPriority",
    "QueueStatus",
    "DeliveryStatus",
    "ActionType",
    "EscalationTier",
    "Channel",
    # 状态机
    "TASK_TRANSITIONS",
    "VALID_QUEUE_TRANSITIONS",
    "QUEUE_TERMINAL_STATES",
    "validate_queue_transition",
    "validate_task_transition",
    # Task
    "Task",
    "AssigneeInfo",
    "CalendarInfo",
    "TaskDraft",
    "TaskUpdate",
    "ensure_utc",
    "validate_due_date",
    # Queue / Log
    "QueueEntry",
    "ChannelSelection",
    "DeliveryLog",
    # 回调 Payloads
    "ChaserSentPayload",
    "ChaserFailedPayload",
    "CalendarConflictPayload",
    "CalendarCreatedPayload",
]
