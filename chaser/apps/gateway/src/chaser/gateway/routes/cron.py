"""手动 dispatch 入口

POST/GET /api/cron/dispatch: 立即执行一次 dispatch cycle。
外部 cron 服务可替代内置调度器调用此入口；已有 cycle 运行时返回 skipped。
"""

import structlog
from fastapi import APIRouter, Depends

from ..deps import get_dispatcher, require_cron_auth
from ..services.dispatcher import QueueDispatcher

log = structlog.get_logger()

router = APIRouter()


@router.api_route(
    "/api/cron/dispatch",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_auth)],
)
async def run_dispatch(dispatcher: QueueDispatcher = Depends(get_dispatcher)):
    result = await dispatcher.run_cycle()
    log.info("cron_dispatch_requested", skipped=result.skipped, selected=result.selected)
    return {"success": True, **result.model_dump()}
