"""packages/core 测试配置 -- 核心层 fixture 与任务构造工具"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from chaser.core.models import (
    AssigneeInfo,
    ChannelSelection,
    EscalationTier,
    QueueEntry,
    Task,
    TaskPriority,
)
from ulid import ULID

# 固定基准时间，避免测试依赖当前时钟
BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def core_db(core_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接"""
    from chaser.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(core_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


def build_task(
    due_in: timedelta = timedelta(hours=30),
    *,
    now: datetime = BASE_TIME,
    title: str = "Prepare quarterly report",
    email: str = "alice@example.com",
    name: str | None = "Alice",
    phone: str | None = None,
    slack_channel: str | None = None,
    enable_call: bool = False,
    priority: TaskPriority = TaskPriority.HIGH,
) -> Task:
    return Task(
        task_id=str(ULID()),
        title=title,
        assignee=AssigneeInfo(
            email=email,
            name=name,
            phone=phone,
            slack_channel=slack_channel,
            enable_call=enable_call,
        ),
        due_date=now + due_in,
        priority=priority,
        created_at=now,
        updated_at=now,
    )


def build_entry(
    task: Task,
    scheduled_at: datetime,
    *,
    tier: EscalationTier = EscalationTier.UPCOMING,
    channels: ChannelSelection | None = None,
) -> QueueEntry:
    return QueueEntry(
        queue_id=str(ULID()),
        task_id=task.task_id,
        scheduled_at=scheduled_at,
        recipient_email=task.assignee.email,
        message_subject=f"Reminder: {task.title}",
        message_body="<p>body</p>",
        escalation_tier=tier,
        channels=channels or ChannelSelection(),
        created_at=task.created_at,
    )


@pytest.fixture
def make_task() -> Callable[..., Task]:
    return build_task


@pytest.fixture
def make_entry() -> Callable[..., QueueEntry]:
    return build_entry
