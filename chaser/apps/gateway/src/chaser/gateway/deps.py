"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

所有实例通过 app.state 管理，在 lifespan（或测试中的 init_app_state）中初始化。
"""

from chaser.core.config import SchedulerConfig
from chaser.core.store import StoreGroup
from chaser.sink import SinkConfig, verify_bearer, verify_signature
from chaser.sink.signing import SIGNATURE_HEADER
from fastapi import Request

from .errors import UnauthorizedError
from .services.callback_service import DeliveryCallbackHandler
from .services.dispatcher import QueueDispatcher
from .services.task_service import TaskService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_dispatcher(request: Request) -> QueueDispatcher:
    return request.app.state.dispatcher


def get_callback_handler(request: Request) -> DeliveryCallbackHandler:
    return request.app.state.callback_handler


def get_task_service(request: Request) -> TaskService:
    """每个请求构造一个 TaskService（无状态，共享 store 与 dispatcher）"""
    state = request.app.state
    return TaskService(
        state.store_group,
        state.dispatcher,
        frontend_url=state.dispatcher.payload_builder.frontend_url,
    )


async def require_callback_auth(request: Request) -> None:
    """入站回调鉴权

    配置了 CHASER_CALLBACK_SECRET 时，需要 HMAC 签名头或 Bearer 令牌其一；
    未配置时放行。
    """
    sink_config: SinkConfig = request.app.state.sink_config
    secret = sink_config.callback_secret.get_secret_value()
    if not secret:
        return

    if verify_bearer(secret, request.headers.get("authorization")):
        return
    body = await request.body()
    if verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
        return
    raise UnauthorizedError("Invalid callback signature")


async def require_cron_auth(request: Request) -> None:
    """手动 dispatch 入口鉴权（配置了 CHASER_CRON_SECRET 时需要 Bearer 令牌）"""
    scheduler_config: SchedulerConfig = request.app.state.scheduler_config
    secret = scheduler_config.cron_secret.get_secret_value()
    if not secret:
        return
    if not verify_bearer(secret, request.headers.get("authorization")):
        raise UnauthorizedError("Invalid cron secret")
