"""QueueEntry Domain Model -- 一条已排程的 chaser

状态机: pending -> triggered -> sent / failed，pending -> cancelled。
归属于 Task（task 删除时级联删除）。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import EscalationTier, QueueStatus


class ChannelSelection(BaseModel):
    """渠道选择 -- 自动 chaser 全部开启，手动 nudge 可按需关闭"""

    email: bool = Field(default=True)
    slack: bool = Field(default=True)
    sms: bool = Field(default=True)
    call: bool = Field(default=True)


class QueueEntry(BaseModel):
    """QueueEntry 数据模型"""

    queue_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="所属 Task ID")
    scheduled_at: datetime = Field(description="计划发送时间")
    status: QueueStatus = Field(default=QueueStatus.PENDING, description="当前状态")
    recipient_email: str = Field(description="收件人邮箱")
    message_subject: str = Field(default="", description="创建时渲染的主题")
    message_body: str = Field(default="", description="创建时渲染的正文")
    escalation_tier: EscalationTier = Field(description="升级层级")
    channels: ChannelSelection = Field(default_factory=ChannelSelection, description="渠道选择")
    attempt_count: int = Field(default=0, ge=0, description="失败的投递尝试次数")
    next_attempt_at: datetime | None = Field(default=None, description="退避后最早重试时间")
    sent_at: datetime | None = Field(default=None, description="送达时间")
    last_attempt_at: datetime | None = Field(default=None, description="最近一次投递尝试时间")
    created_at: datetime = Field(description="创建时间")
