"""外部 sink 回调路由

POST /api/webhooks/chaser-sent: 投递成功
POST /api/webhooks/chaser-failed: 投递失败
POST /api/webhooks/calendar-conflict: 日程冲突检测结果
POST /api/webhooks/calendar-created: 日历事件已创建

重复回调返回 200 且 duplicate=true；与终态矛盾的回调返回 409。
"""

from chaser.core.models import (
    CalendarConflictPayload,
    CalendarCreatedPayload,
    ChaserFailedPayload,
    ChaserSentPayload,
)
from fastapi import APIRouter, Depends

from ..deps import get_callback_handler, require_callback_auth
from ..services.callback_service import DeliveryCallbackHandler

router = APIRouter(
    prefix="/api/webhooks",
    dependencies=[Depends(require_callback_auth)],
)


@router.post("/chaser-sent")
async def chaser_sent(
    payload: ChaserSentPayload,
    handler: DeliveryCallbackHandler = Depends(get_callback_handler),
):
    result = await handler.on_dispatch_succeeded(
        payload.queue_id,
        sent_at=payload.sent_at,
        execution_id=payload.execution_id,
    )
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/chaser-failed")
async def chaser_failed(
    payload: ChaserFailedPayload,
    handler: DeliveryCallbackHandler = Depends(get_callback_handler),
):
    result = await handler.on_dispatch_failed(payload.queue_id, payload.error_message)
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/calendar-conflict")
async def calendar_conflict(
    payload: CalendarConflictPayload,
    handler: DeliveryCallbackHandler = Depends(get_callback_handler),
):
    await handler.on_calendar_conflict(payload)
    return {"success": True, "task_id": payload.task_id, "has_conflict": payload.has_conflict}


@router.post("/calendar-created")
async def calendar_created(
    payload: CalendarCreatedPayload,
    handler: DeliveryCallbackHandler = Depends(get_callback_handler),
):
    await handler.on_calendar_created(payload.task_id, payload.calendar_event_id)
    return {
        "success": True,
        "task_id": payload.task_id,
        "calendar_event_id": payload.calendar_event_id,
    }
