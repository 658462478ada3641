"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、前端链接、标题长度限制等常量，
以及调度器配置组 SchedulerConfig（运行时从环境变量加载）。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, SecretStr, ValidationError

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CHASER_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "CHASER_DB_PATH",
        str(_get_base_dir() / "sqlite" / "chaser.db"),
    )


def get_frontend_url() -> str:
    """获取前端基础 URL（用于生成任务链接）"""
    return os.environ.get("CHASER_FRONTEND_URL", "http://localhost:3000").rstrip("/")


# 任务标题最大长度
TITLE_MAX_LENGTH: int = 500

# 截止时间允许的年份范围（含），保证 due ± 提醒提前量 / 日历时长不越界
DUE_DATE_MIN_YEAR: int = 1970
DUE_DATE_MAX_YEAR: int = 2999

# 即将发送的 chaser 列表默认条数
UPCOMING_CHASERS_LIMIT: int = 5


class SchedulerConfig(BaseModel):
    """调度器配置 -- 从环境变量加载

    环境变量:
        CHASER_SCHEDULER_ENABLED: 是否启动后台轮询
        CHASER_DISPATCH_INTERVAL_S: 轮询间隔（秒，默认 60）
        CHASER_DISPATCH_STARTUP_DELAY_S: 启动后首次检查延迟（秒，默认 5）
        CHASER_DISPATCH_BATCH_SIZE: 每轮最多处理条数（默认 5）
        CHASER_DISPATCH_MAX_ATTEMPTS: 最大投递尝试次数（0 表示不限）
        CHASER_DISPATCH_RETRY_BACKOFF_S: 重试退避基数（秒，0 表示下一轮直接重试）
        CHASER_DISPATCH_MAX_BACKOFF_S: 退避上限（秒）
        CHASER_CRON_SECRET: 手动触发入口的 Bearer 密钥（可选）
    """

    enabled: bool = Field(default=True, description="是否启动后台轮询")
    interval_s: float = Field(default=60.0, gt=0, description="轮询间隔（秒）")
    startup_delay_s: float = Field(default=5.0, ge=0, description="启动后首次检查延迟（秒）")
    batch_size: int = Field(default=5, ge=1, description="每轮最多处理条数")
    max_attempts: int = Field(default=0, ge=0, description="最大投递尝试次数，0 表示不限")
    retry_backoff_s: float = Field(default=0.0, ge=0, description="重试退避基数（秒）")
    max_backoff_s: float = Field(default=3600.0, ge=0, description="退避上限（秒）")
    cron_secret: SecretStr = Field(
        default=SecretStr(""),
        description="手动触发入口的 Bearer 密钥，为空表示不校验",
    )


_BOOL_TRUE = {"1", "true", "yes", "on"}

_NUMERIC_FIELDS: dict[str, tuple[str, type]] = {
    "CHASER_DISPATCH_INTERVAL_S": ("interval_s", float),
    "CHASER_DISPATCH_STARTUP_DELAY_S": ("startup_delay_s", float),
    "CHASER_DISPATCH_BATCH_SIZE": ("batch_size", int),
    "CHASER_DISPATCH_MAX_ATTEMPTS": ("max_attempts", int),
    "CHASER_DISPATCH_RETRY_BACKOFF_S": ("retry_backoff_s", float),
    "CHASER_DISPATCH_MAX_BACKOFF_S": ("max_backoff_s", float),
}


def load_scheduler_config() -> SchedulerConfig:
    """从环境变量加载调度器配置

    非法数值只记录 warning 并回退默认值，不阻塞启动。

    Returns:
        SchedulerConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CHASER_SCHEDULER_ENABLED"):
        kwargs["enabled"] = val.strip().lower() in _BOOL_TRUE

    for env_var, (field_name, cast) in _NUMERIC_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            parsed = cast(val)
            SchedulerConfig.model_validate({field_name: parsed})
            kwargs[field_name] = parsed
        except (ValueError, ValidationError):
            log.warning(
                "invalid_scheduler_config",
                env_var=env_var,
                value=val,
                fallback=SchedulerConfig.model_fields[field_name].default,
            )

    if val := os.environ.get("CHASER_CRON_SECRET"):
        kwargs["cron_secret"] = SecretStr(val)

    return SchedulerConfig(**kwargs)
