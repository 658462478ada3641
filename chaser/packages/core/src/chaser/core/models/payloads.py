"""外部 sink 回调 payload

chaser-sent / chaser-failed 推进 QueueEntry 状态，
calendar-conflict / calendar-created 仅更新 Task 的日历字段。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .draft import ensure_utc


class ChaserSentPayload(BaseModel):
    """chaser-sent 回调"""

    queue_id: str = Field(min_length=1)
    status: str | None = Field(default=None, description="sink 侧状态，仅记录")
    sent_at: datetime | None = Field(default=None, description="实际发送时间，缺省为接收时间")
    execution_id: str | None = Field(default=None, description="外部执行 ID")

    @field_validator("sent_at")
    @classmethod
    def validate_sent_at_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class ChaserFailedPayload(BaseModel):
    """chaser-failed 回调"""

    queue_id: str = Field(min_length=1)
    error_message: str | None = Field(default=None)


class CalendarConflictPayload(BaseModel):
    """calendar-conflict 回调"""

    task_id: str = Field(min_length=1)
    has_conflict: bool = Field(default=False)
    conflict_with: str | None = Field(default=None)
    conflict_end_time: datetime | None = Field(default=None)

    @field_validator("conflict_end_time")
    @classmethod
    def validate_end_time_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class CalendarCreatedPayload(BaseModel):
    """calendar-created 回调"""

    task_id: str = Field(min_length=1)
    calendar_event_id: str = Field(min_length=1)
