"""任务路由

POST  /api/tasks: 创建任务并生成提醒计划（201）
GET   /api/tasks: 任务列表，支持 status 筛选
GET   /api/tasks/{task_id}: 任务详情，含投递日志与 pending chaser
PATCH /api/tasks/{task_id}: 局部更新
POST  /api/tasks/{task_id}/complete: 完成任务（幂等）
POST  /api/tasks/{task_id}/reschedule: 修改截止时间，可选 replan
POST  /api/tasks/{task_id}/update-timeline: 按日历事件时间改期并同步日历
"""

from datetime import datetime

from chaser.core.models import TaskDraft, TaskStatus, TaskUpdate, validate_due_date
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from starlette.responses import JSONResponse

from ..deps import get_task_service
from ..schemas import (
    CreateTaskResponse,
    TaskDetailResponse,
    TaskListResponse,
    TaskSummary,
    entry_json,
    log_json,
    task_json,
)
from ..services.task_service import TaskService

router = APIRouter()


class RescheduleRequest(BaseModel):
    due_date: datetime = Field(description="新的截止时间，无时区视为 UTC")
    replan: bool = Field(default=False, description="是否取消现有 chaser 并重新计划")

    @field_validator("due_date")
    @classmethod
    def validate_due(cls, v: datetime) -> datetime:
        return validate_due_date(v)


class UpdateTimelineRequest(BaseModel):
    event_start: datetime = Field(description="日历事件开始时间（作为新的截止时间）")
    event_end: datetime | None = Field(default=None)

    @field_validator("event_start", "event_end")
    @classmethod
    def validate_event_time(cls, v: datetime | None) -> datetime | None:
        return validate_due_date(v) if v is not None else None


@router.post("/api/tasks", status_code=201, response_model=CreateTaskResponse)
async def create_task(
    draft: TaskDraft,
    service: TaskService = Depends(get_task_service),
):
    task, chasers = await service.create_task(draft)
    return CreateTaskResponse(
        task=task_json(task),
        chasers=[entry_json(e) for e in chasers],
    )


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    service: TaskService = Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    rows = await service.list_tasks(status.value if status else None)
    return TaskListResponse(
        tasks=[
            TaskSummary(task=task_json(task), pending_chasers_count=count)
            for task, count in rows
        ]
    )


@router.get("/api/tasks/{task_id}", response_model=TaskDetailResponse)
async def get_task_detail(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    detail = await service.get_task_detail(task_id)
    return TaskDetailResponse(
        task=task_json(detail.task),
        logs=[log_json(entry) for entry in detail.logs],
        pending_chasers=[entry_json(e) for e in detail.pending_chasers],
    )


@router.patch("/api/tasks/{task_id}")
async def update_task(
    task_id: str,
    update: TaskUpdate,
    service: TaskService = Depends(get_task_service),
):
    task = await service.update_task(task_id, update)
    return {"task": task_json(task)}


@router.post("/api/tasks/{task_id}/complete")
async def complete_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """完成任务；已完成的任务重复调用返回 200 且不产生副作用"""
    result = await service.mark_completed(task_id)
    return JSONResponse(
        status_code=200,
        content={
            "task": task_json(result.task),
            "transitioned": result.transitioned,
            "cancelled_chasers": result.cancelled_chasers,
        },
    )


@router.post("/api/tasks/{task_id}/reschedule")
async def reschedule_task(
    task_id: str,
    body: RescheduleRequest,
    service: TaskService = Depends(get_task_service),
):
    result = await service.reschedule(task_id, body.due_date, replan=body.replan)
    return {
        "task": task_json(result.task),
        "replanned": result.replanned,
        "cancelled_chasers": result.cancelled_chasers,
        "chasers": [entry_json(e) for e in result.new_chasers],
    }


@router.post("/api/tasks/{task_id}/update-timeline")
async def update_timeline(
    task_id: str,
    body: UpdateTimelineRequest,
    service: TaskService = Depends(get_task_service),
):
    task = await service.update_timeline(task_id, body.event_start, body.event_end)
    return {"task": task_json(task)}
