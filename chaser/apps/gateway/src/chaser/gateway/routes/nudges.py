"""手动 nudge 路由

POST /api/nudges: 插入一条 tier 0 chaser 并立即派发。
- 200: sink 已受理
- 404: 任务不存在
- 409: 任务已完成
- 502: sink 未配置或派发失败（条目保持 pending，由调度器重试）
"""

from chaser.core.models import ChannelSelection
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_task_service
from ..errors import error_response
from ..schemas import entry_json
from ..services.dispatcher import DispatchOutcome
from ..services.task_service import TaskService

router = APIRouter()


class NudgeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId", min_length=1)
    channels: ChannelSelection = Field(default_factory=ChannelSelection)


@router.post("/api/nudges")
async def send_nudge(
    body: NudgeRequest,
    service: TaskService = Depends(get_task_service),
):
    result = await service.send_nudge(body.task_id, body.channels)
    if result.outcome is not DispatchOutcome.TRIGGERED:
        reason = result.outcome.value if result.outcome else "not_dispatched"
        return error_response(
            502,
            "SINK_UNAVAILABLE",
            f"Nudge queued but not delivered ({reason}); it will be retried",
        )
    return {
        "success": True,
        "chaser": entry_json(result.entry),
        "outcome": result.outcome.value,
    }
