"""数据模型 -- DispatchPayload + DispatchResult

DispatchPayload 是发送给外部自动化平台的完整键值结构：
各渠道文案已预先渲染，空字符串表示该渠道跳过。
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class DispatchPayload(BaseModel):
    """一次派发请求

    字段按用途分组：标识 / 收件人 / 渠道文案 / 任务元数据 / 日历窗口 / 回调地址。
    """

    # 标识
    queue_id: str | None = Field(
        default=None, description="QueueEntry ID，日历 delete/update 动作为空"
    )
    task_id: str = Field(description="Task ID")
    action_type: Literal["create", "notify", "delete", "update"] = Field(
        description="create 首次创建日历事件 / notify 仅通知 / delete / update"
    )
    calendar_event_id: str | None = Field(default=None)
    escalation_tier: int | None = Field(default=None, description="本次使用的文案层级")
    planned_tier: int | None = Field(default=None, description="排程时的层级")
    hours_remaining: float | None = Field(default=None)

    # 收件人
    recipient_email: str = Field(default="")
    recipient_name: str = Field(default="there")
    recipient_phone: str | None = Field(default=None)
    enable_call: bool = Field(default=False)

    # 渠道文案（空字符串 = 跳过该渠道）
    subject: str = Field(default="")
    body: str = Field(default="")
    sms_message: str = Field(default="")
    call_message: str = Field(default="")
    slack_message: str = Field(default="")
    slack_channel: str | None = Field(default=None)

    # 任务元数据
    task_title: str = Field(default="Task")
    task_priority: str = Field(default="medium")
    task_due_date: str = Field(default="", description="格式化后的截止时间")
    task_link: str = Field(default="")

    # 日历窗口
    event_start: datetime | None = Field(default=None, description="due - 30 分钟")
    event_end: datetime | None = Field(default=None, description="due + 30 分钟")
    event_check_start: datetime | None = Field(default=None, description="due - 1 小时")
    event_check_end: datetime | None = Field(default=None, description="due + 30 分钟")
    event_summary: str = Field(default="")
    event_description: str = Field(default="")
    current_time_start: datetime | None = Field(default=None)
    current_time_end: datetime | None = Field(default=None)

    # 回调地址
    callback_url: str = Field(default="")
    failure_callback_url: str = Field(default="")
    conflict_callback_url: str = Field(default="")
    event_created_callback_url: str = Field(default="")


class DispatchResult(BaseModel):
    """派发结果 -- 仅表示 sink 已受理，不代表已送达"""

    accepted: bool = Field(default=True)
    status_code: int = Field(default=200, description="sink 返回的 HTTP 状态码")
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")
    execution_id: str | None = Field(default=None, description="sink 返回的执行 ID")
    sink: str = Field(default="webhook", description="webhook / echo")
