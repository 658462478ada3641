"""Chaser Sink -- 外部 dispatch sink 抽象层

packages/sink 的公开接口导出。
"""

# 核心组件
from .client import WebhookSinkClient

# 配置
from .config import SinkConfig, load_sink_config
from .echo_adapter import EchoSinkAdapter

# 异常
from .exceptions import (
    SinkError,
    SinkNotConfiguredError,
    SinkRejectedError,
    SinkUnreachableError,
)

# 数据模型
from .models import DispatchPayload, DispatchResult
from .protocols import DispatchSink
from .signing import SIGNATURE_HEADER, compute_signature, verify_bearer, verify_signature


def create_sink(config: SinkConfig) -> DispatchSink | None:
    """按配置创建 sink

    Returns:
        echo 模式返回 EchoSinkAdapter；webhook 模式未配置地址时返回 None
    """
    if config.mode == "echo":
        return EchoSinkAdapter()
    if not config.webhook_url:
        return None
    return WebhookSinkClient(
        webhook_url=config.webhook_url,
        timeout_s=config.timeout_s,
        secret=config.callback_secret.get_secret_value(),
    )


__all__ = [
    "DispatchPayload",
    "DispatchResult",
    "DispatchSink",
    "WebhookSinkClient",
    "EchoSinkAdapter",
    "SinkConfig",
    "load_sink_config",
    "create_sink",
    "SinkError",
    "SinkUnreachableError",
    "SinkRejectedError",
    "SinkNotConfiguredError",
    "SIGNATURE_HEADER",
    "compute_signature",
    "verify_signature",
    "verify_bearer",
]
