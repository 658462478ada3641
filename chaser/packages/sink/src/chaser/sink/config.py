"""SinkConfig -- 外部 dispatch sink 配置加载

从环境变量加载配置，不硬编码 webhook 地址或密钥。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class SinkConfig(BaseModel):
    """Sink 包配置 -- 从环境变量加载

    环境变量:
        CHASER_SINK_MODE: 运行模式（webhook/echo）
        CHASER_SINK_WEBHOOK_URL: 外部自动化平台 webhook 地址
        CHASER_SINK_TIMEOUT_S: 单次派发超时（秒，默认 10）
        CHASER_BACKEND_PUBLIC_URL: 回调基础地址（sink 需能访问）
        CHASER_CALLBACK_SECRET: 出站签名 / 入站回调校验共享密钥
    """

    mode: Literal["webhook", "echo"] = Field(
        default="webhook",
        description="运行模式：webhook / echo",
    )
    webhook_url: str = Field(
        default="",
        description="外部自动化平台 webhook 地址，为空时调度器跳过派发",
    )
    timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="单次派发超时（秒）",
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="sink 回调本服务使用的基础 URL",
    )
    callback_secret: SecretStr = Field(
        default=SecretStr(""),
        description="共享密钥，为空表示不签名、不校验回调",
    )


def load_sink_config() -> SinkConfig:
    """从环境变量加载 Sink 配置

    环境变量映射:
        CHASER_SINK_MODE -> mode (默认 "webhook")
        CHASER_SINK_WEBHOOK_URL -> webhook_url (默认 "")
        CHASER_SINK_TIMEOUT_S -> timeout_s (默认 10)
        CHASER_BACKEND_PUBLIC_URL -> public_base_url (默认 "http://localhost:8000")
        CHASER_CALLBACK_SECRET -> callback_secret (默认 "")

    Returns:
        SinkConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CHASER_SINK_MODE"):
        mode = val.strip().lower()
        if mode in ("webhook", "echo"):
            kwargs["mode"] = mode
        else:
            log.warning(
                "invalid_sink_mode",
                env_var="CHASER_SINK_MODE",
                value=val,
                fallback="webhook",
            )

    if val := os.environ.get("CHASER_SINK_WEBHOOK_URL"):
        kwargs["webhook_url"] = val

    if val := os.environ.get("CHASER_SINK_TIMEOUT_S"):
        try:
            timeout = float(val)
            if timeout <= 0:
                raise ValueError(val)
            kwargs["timeout_s"] = timeout
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="CHASER_SINK_TIMEOUT_S",
                value=val,
                fallback=10,
            )
            # 使用默认值，不阻塞启动

    if val := os.environ.get("CHASER_BACKEND_PUBLIC_URL"):
        kwargs["public_base_url"] = val.rstrip("/")

    if val := os.environ.get("CHASER_CALLBACK_SECRET"):
        kwargs["callback_secret"] = SecretStr(val)

    return SinkConfig(**kwargs)
