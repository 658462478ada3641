"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + sink / 派发器 / 调度器装配 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from chaser.core.config import (
    SchedulerConfig,
    get_db_path,
    get_frontend_url,
    load_scheduler_config,
)
from chaser.core.store import StoreGroup, create_store_group
from chaser.sink import DispatchSink, SinkConfig, create_sink, load_sink_config
from fastapi import FastAPI

from .errors import register_error_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import cron, dashboard, health, nudges, tasks, webhooks
from .services.callback_service import DeliveryCallbackHandler
from .services.dispatcher import QueueDispatcher
from .services.payload_builder import PayloadBuilder
from .services.scheduler import ChaserScheduler

log = structlog.get_logger()


def init_app_state(
    app: FastAPI,
    store_group: StoreGroup,
    sink_config: SinkConfig,
    scheduler_config: SchedulerConfig,
    sink: DispatchSink | None = None,
) -> None:
    """装配服务实例到 app.state

    sink 为 None 时按 sink_config 创建（webhook 未配置时仍为 None）。
    """
    if sink is None:
        sink = create_sink(sink_config)

    payload_builder = PayloadBuilder(
        frontend_url=get_frontend_url(),
        public_base_url=sink_config.public_base_url,
    )
    callback_handler = DeliveryCallbackHandler(store_group)
    dispatcher = QueueDispatcher(
        store_group,
        sink,
        callback_handler,
        payload_builder,
        timeout_s=sink_config.timeout_s,
        batch_size=scheduler_config.batch_size,
        max_attempts=scheduler_config.max_attempts,
        retry_backoff_s=scheduler_config.retry_backoff_s,
        max_backoff_s=scheduler_config.max_backoff_s,
    )

    app.state.store_group = store_group
    app.state.sink_config = sink_config
    app.state.scheduler_config = scheduler_config
    app.state.callback_handler = callback_handler
    app.state.dispatcher = dispatcher
    app.state.scheduler = ChaserScheduler(
        dispatcher,
        interval_s=scheduler_config.interval_s,
        startup_delay_s=scheduler_config.startup_delay_s,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与调度器，关闭时停止调度器并清理连接"""
    store_group = await create_store_group(get_db_path())
    sink_config = load_sink_config()
    scheduler_config = load_scheduler_config()
    init_app_state(app, store_group, sink_config, scheduler_config)

    if app.state.dispatcher.sink is None:
        log.warning("sink_not_configured", mode=sink_config.mode)
    else:
        log.info("sink_initialized", mode=sink_config.mode, timeout_s=sink_config.timeout_s)

    if not sink_config.callback_secret.get_secret_value():
        log.warning("callback_auth_disabled", reason="CHASER_CALLBACK_SECRET not set")

    if scheduler_config.enabled:
        app.state.scheduler.start()
    else:
        log.info("chaser_scheduler_disabled")

    yield

    await app.state.scheduler.stop()
    await store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Chaser Gateway",
        version="0.1.0",
        description="任务截止提醒升级与派发 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    register_error_handlers(app)

    # 注册路由
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(nudges.router, tags=["nudges"])
    app.include_router(dashboard.router, tags=["dashboard"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
