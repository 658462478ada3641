"""仪表盘路由

GET /api/queue/upcoming: 下一批 pending chaser
GET /api/stats: 任务总数 / pending 任务数 / 今日已送达 chaser 数
"""

from chaser.core.config import UPCOMING_CHASERS_LIMIT
from fastapi import APIRouter, Depends, Query

from ..deps import get_task_service
from ..schemas import upcoming_json
from ..services.task_service import TaskService

router = APIRouter()


@router.get("/api/queue/upcoming")
async def list_upcoming(
    limit: int = Query(default=UPCOMING_CHASERS_LIMIT, ge=1, le=100),
    service: TaskService = Depends(get_task_service),
):
    rows = await service.list_upcoming(limit)
    return {"chasers": [upcoming_json(entry, task) for entry, task in rows]}


@router.get("/api/stats")
async def get_stats(service: TaskService = Depends(get_task_service)):
    stats = await service.get_stats()
    return {
        "totalTasks": stats.total_tasks,
        "pendingTasks": stats.pending_tasks,
        "chasersSentToday": stats.chasers_sent_today,
    }
