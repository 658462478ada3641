"""Task Domain Model

tasks 表中 assignee / calendar 两个嵌套对象以 JSON 列存储，
计数器（total_chasers_sent）只通过 store 层原子自增修改。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import TaskPriority, TaskStatus


class AssigneeInfo(BaseModel):
    """负责人联系方式"""

    email: str = Field(description="邮箱（必填，小写）")
    name: str | None = Field(default=None, description="姓名")
    phone: str | None = Field(default=None, description="手机号（SMS / 电话）")
    slack_channel: str | None = Field(default=None, description="Slack 频道（不含 #）")
    enable_call: bool = Field(default=False, description="是否允许电话提醒")


class CalendarInfo(BaseModel):
    """外部日历事件引用 + 冲突检测结果"""

    event_id: str | None = Field(default=None, description="外部日历事件 ID")
    has_conflict: bool = Field(default=False, description="是否检测到日程冲突")
    conflict_with: str | None = Field(default=None, description="冲突事件描述")
    conflict_end_time: datetime | None = Field(default=None, description="冲突事件结束时间")


class Task(BaseModel):
    """Task 数据模型

    status 只允许 pending -> completed 单向流转；
    计数器由回调处理器通过原子自增维护。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(description="任务标题")
    assignee: AssigneeInfo = Field(description="负责人信息")
    due_date: datetime = Field(description="截止时间（UTC）")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="优先级")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    total_chasers_sent: int = Field(default=0, ge=0, description="已送达提醒数")
    last_chaser_sent_at: datetime | None = Field(default=None, description="最近送达时间")
    calendar: CalendarInfo = Field(default_factory=CalendarInfo, description="日历信息")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def has_calendar_event(self) -> bool:
        return bool(self.calendar.event_id)
