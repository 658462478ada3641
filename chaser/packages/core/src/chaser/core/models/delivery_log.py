"""DeliveryLog Domain Model -- append-only 投递审计记录

只由回调处理器写入，不更新、不删除。
task_id / queue_id 为软引用，QueueEntry 删除后日志仍然有效。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import DeliveryStatus


class DeliveryLog(BaseModel):
    """DeliveryLog 数据模型"""

    log_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    queue_id: str | None = Field(default=None, description="关联的 QueueEntry ID")
    sent_at: datetime = Field(description="结果记录时间")
    status: DeliveryStatus = Field(description="投递结果")
    recipient_email: str = Field(default="", description="收件人")
    message_subject: str = Field(default="", description="主题快照")
    message_body: str = Field(default="", description="正文快照（失败时附加错误信息）")
    execution_id: str | None = Field(default=None, description="外部执行 ID")
    created_at: datetime = Field(description="写入时间")
