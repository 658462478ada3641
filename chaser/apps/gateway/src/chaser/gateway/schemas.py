"""HTTP 响应模型

领域模型直接以 JSON 模式序列化（datetime -> ISO-8601），
列表项附加派生字段。
"""

from chaser.core.models import DeliveryLog, QueueEntry, Task
from pydantic import BaseModel, Field


class TaskSummary(BaseModel):
    """任务列表项"""

    task: dict
    pending_chasers_count: int = Field(default=0)


class TaskListResponse(BaseModel):
    tasks: list[TaskSummary]


class TaskDetailResponse(BaseModel):
    task: dict
    logs: list[dict]
    pending_chasers: list[dict]


class CreateTaskResponse(BaseModel):
    task: dict
    chasers: list[dict]


class UpcomingChaser(BaseModel):
    """即将发送的 chaser，附带任务标题、负责人与截止时间"""

    chaser: dict
    task_title: str
    assignee_email: str
    assignee_name: str | None = None
    due_date: str


def task_json(task: Task) -> dict:
    data = task.model_dump(mode="json")
    data["has_calendar_event"] = task.has_calendar_event
    return data


def entry_json(entry: QueueEntry) -> dict:
    return entry.model_dump(mode="json")


def log_json(delivery_log: DeliveryLog) -> dict:
    return delivery_log.model_dump(mode="json")


def upcoming_json(entry: QueueEntry, task: Task) -> UpcomingChaser:
    return UpcomingChaser(
        chaser=entry_json(entry),
        task_title=task.title,
        assignee_email=task.assignee.email,
        assignee_name=task.assignee.name,
        due_date=task.due_date.isoformat(),
    )
