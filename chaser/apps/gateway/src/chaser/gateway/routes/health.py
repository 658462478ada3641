"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式与调度器状态；
            profile=sink/full 时额外探测外部 dispatch sink。
"""

import aiosqlite
import structlog
from chaser.core.store.sqlite_init import verify_wal_mode
from chaser.sink import SinkError
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="检查配置文件：core（默认）仅核心检查；sink/full 包含 dispatch sink 探测",
    ),
):
    """Readiness 检查 -- 验证核心依赖可用性

    profile 参数:
        - None / "core": 仅核心检查，sink="skipped"
        - "sink": 核心检查 + sink 真实探测
        - "full": 等同于 "sink"

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: journal_mode 是否为 WAL
    3. scheduler: 后台调度器是否运行（未启用时为 disabled）
    4. sink: 根据 profile 决定是否探测
    """
    effective_profile = profile or "core"
    state = request.app.state

    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        cursor = await state.store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except aiosqlite.Error as e:
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    # 2. WAL 模式
    if checks["sqlite"] == "ok":
        wal = await verify_wal_mode(state.store_group.conn)
        checks["wal_mode"] = "ok" if wal else "disabled"

    # 3. 调度器
    scheduler = getattr(state, "scheduler", None)
    if scheduler is None or not state.scheduler_config.enabled:
        checks["scheduler"] = "disabled"
    else:
        checks["scheduler"] = "running" if scheduler.running else "stopped"

    # 4. Sink 探测
    sink = state.dispatcher.sink
    if sink is None:
        checks["sink"] = "not_configured"
    elif effective_profile in ("sink", "full"):
        try:
            checks["sink"] = "ok" if await sink.health_check() else "unreachable"
        except SinkError as e:
            log.warning("health_check_error", error=str(e))
            checks["sink"] = "unreachable"
        if checks["sink"] != "ok":
            all_ok = False
    else:
        checks["sink"] = "skipped"

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "profile": effective_profile,
            "checks": checks,
        },
    )
