"""Core 异常体系

NotFound 类异常直接反馈给调用方，不重试；
Conflict 类异常表示请求与当前终态矛盾。
"""


class ChaserError(Exception):
    """Chaser 基础异常"""

    code: str = "CHASER_ERROR"


class TaskNotFoundError(ChaserError):
    """任务不存在"""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class QueueEntryNotFoundError(ChaserError):
    """QueueEntry 不存在"""

    code = "QUEUE_ENTRY_NOT_FOUND"

    def __init__(self, queue_id: str) -> None:
        super().__init__(f"Queue entry with id {queue_id} does not exist")
        self.queue_id = queue_id


class TaskAlreadyCompletedError(ChaserError):
    """任务已完成，不允许回退或改期"""

    code = "TASK_ALREADY_COMPLETED"

    def __init__(self, task_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Task {task_id} is already completed")
        self.task_id = task_id


class CallbackConflictError(ChaserError):
    """回调结果与 QueueEntry 当前终态矛盾（如对已取消条目报告送达）"""

    code = "CALLBACK_CONFLICT"

    def __init__(self, queue_id: str, current_status: str, outcome: str) -> None:
        super().__init__(
            f"Queue entry {queue_id} is {current_status}, cannot record outcome {outcome}"
        )
        self.queue_id = queue_id
        self.current_status = current_status
        self.outcome = outcome
