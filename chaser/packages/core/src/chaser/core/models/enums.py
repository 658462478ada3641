"""枚举定义 -- Task / QueueEntry / DeliveryLog 状态与升级层级

包含 TaskStatus、QueueStatus 两个状态机及其合法流转映射，
EscalationTier 升级层级、Channel 消息渠道、ActionType 外部动作类型。
"""

from enum import IntEnum, StrEnum


class TaskStatus(StrEnum):
    """Task 生命周期 -- 只允许 pending -> completed 单向流转"""

    PENDING = "pending"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QueueStatus(StrEnum):
    """QueueEntry（chaser）状态机"""

    # 活跃状态
    PENDING = "pending"
    TRIGGERED = "triggered"

    # 终态
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryStatus(StrEnum):
    """投递日志结果"""

    SENT = "sent"
    FAILED = "failed"


class ActionType(StrEnum):
    """发送给外部 sink 的动作类型"""

    # 首次提醒：同时创建日历事件
    CREATE = "create"
    # 已有日历事件：仅通知
    NOTIFY = "notify"
    # 任务完成：删除日历事件
    DELETE = "delete"
    # 任务改期：更新日历事件
    UPDATE = "update"


class EscalationTier(IntEnum):
    """升级层级 -- 0 为手动 nudge，1..4 紧急程度递增"""

    NUDGE = 0
    UPCOMING = 1
    REMINDER = 2
    URGENT = 3
    CRITICAL = 4


class Channel(StrEnum):
    """消息渠道（模板表的第二维）"""

    SUBJECT = "subject"
    EMAIL = "email"
    SMS = "sms"
    CALL = "call"
    SLACK = "slack"


TASK_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: set(),
}

# QueueEntry 合法流转
# pending -> sent / failed 由回调直接推进（dispatch 超时但 sink 已受理，或重试耗尽）
VALID_QUEUE_TRANSITIONS: dict[QueueStatus, set[QueueStatus]] = {
    QueueStatus.PENDING: {
        QueueStatus.TRIGGERED,
        QueueStatus.SENT,
        QueueStatus.FAILED,
        QueueStatus.CANCELLED,
    },
    QueueStatus.TRIGGERED: {
        QueueStatus.SENT,
        QueueStatus.FAILED,
        QueueStatus.CANCELLED,
    },
    # 终态不可再流转
    QueueStatus.SENT: set(),
    QueueStatus.FAILED: set(),
    QueueStatus.CANCELLED: set(),
}

QUEUE_TERMINAL_STATES: set[QueueStatus] = {
    QueueStatus.SENT,
    QueueStatus.FAILED,
    QueueStatus.CANCELLED,
}


def validate_queue_transition(from_status: QueueStatus, to_status: QueueStatus) -> bool:
    """验证 QueueEntry 状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_QUEUE_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def validate_task_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证 Task 状态流转是否合法（completed 重复设置由调用方按 no-op 处理）"""
    return to_status in TASK_TRANSITIONS.get(from_status, set())
