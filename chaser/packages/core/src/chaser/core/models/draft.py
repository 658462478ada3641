"""TaskDraft -- 任务创建 / 更新的输入模型

所有校验在此完成，校验失败时 Planner / Dispatcher 不会运行。
"""

import re
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from ..config import DUE_DATE_MAX_YEAR, DUE_DATE_MIN_YEAR, TITLE_MAX_LENGTH
from .enums import TaskPriority, TaskStatus

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def ensure_utc(value: datetime) -> datetime:
    """无时区视为 UTC，有时区统一转换到 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    try:
        return value.astimezone(UTC)
    except OverflowError as e:
        raise ValueError(f"datetime out of range: {value.isoformat()}") from e


def validate_due_date(value: datetime) -> datetime:
    """截止时间校验：年份范围检查在时区转换之前，转换本身不会越界"""
    if not DUE_DATE_MIN_YEAR <= value.year <= DUE_DATE_MAX_YEAR:
        raise ValueError(
            f"due_date must be between years {DUE_DATE_MIN_YEAR} and {DUE_DATE_MAX_YEAR}"
        )
    return ensure_utc(value)


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Task title is required")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValueError(f"Task title must be at most {TITLE_MAX_LENGTH} characters")
    return value


def _clean_email(value: str) -> str:
    value = value.strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValueError("Valid assignee email is required")
    return value


def _clean_slack_channel(value: str | None) -> str | None:
    value = _clean_optional(value)
    if value is None:
        return None
    return value.lstrip("#").strip() or None


class TaskDraft(BaseModel):
    """任务创建请求"""

    title: str = Field(description="任务标题")
    assignee_email: str = Field(description="负责人邮箱")
    assignee_name: str | None = Field(default=None)
    due_date: datetime = Field(description="截止时间，ISO-8601，无时区视为 UTC")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    slack_channel: str | None = Field(default=None)
    phone_number: str | None = Field(default=None)
    enable_call: bool = Field(default=False)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("assignee_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _clean_email(v)

    @field_validator("assignee_name", "phone_number")
    @classmethod
    def validate_optional_text(cls, v: str | None) -> str | None:
        return _clean_optional(v)

    @field_validator("slack_channel")
    @classmethod
    def validate_slack(cls, v: str | None) -> str | None:
        return _clean_slack_channel(v)

    @field_validator("due_date")
    @classmethod
    def validate_due(cls, v: datetime) -> datetime:
        return validate_due_date(v)


class TaskUpdate(BaseModel):
    """任务部分更新请求（未提供的字段保持不变）"""

    title: str | None = Field(default=None)
    status: TaskStatus | None = Field(default=None)
    priority: TaskPriority | None = Field(default=None)
    due_date: datetime | None = Field(default=None)
    assignee_email: str | None = Field(default=None)
    assignee_name: str | None = Field(default=None)
    slack_channel: str | None = Field(default=None)
    phone_number: str | None = Field(default=None)
    enable_call: bool | None = Field(default=None)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _clean_title(v)

    @field_validator("assignee_email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return _clean_email(v) if v is not None else None

    @field_validator("assignee_name", "phone_number")
    @classmethod
    def validate_optional_text(cls, v: str | None) -> str | None:
        return _clean_optional(v)

    @field_validator("slack_channel")
    @classmethod
    def validate_slack(cls, v: str | None) -> str | None:
        return _clean_slack_channel(v)

    @field_validator("due_date")
    @classmethod
    def validate_due(cls, v: datetime | None) -> datetime | None:
        return validate_due_date(v) if v is not None else None
