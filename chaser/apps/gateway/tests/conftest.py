"""apps/gateway 测试配置 -- 可控时钟、服务装配、FastAPI 测试 app"""

import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from chaser.core.config import SchedulerConfig
from chaser.core.models import TaskDraft
from chaser.core.store import StoreGroup, create_store_group
from chaser.sink import EchoSinkAdapter, SinkConfig
from httpx import ASGITransport, AsyncClient

from chaser.gateway.services.callback_service import DeliveryCallbackHandler
from chaser.gateway.services.dispatcher import QueueDispatcher
from chaser.gateway.services.payload_builder import PayloadBuilder
from chaser.gateway.services.task_service import TaskService

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
FRONTEND = "http://frontend.test"
PUBLIC = "http://api.test"


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now += delta
        return self.now


@dataclass
class ServiceStack:
    stores: StoreGroup
    sink: object
    clock: FakeClock
    builder: PayloadBuilder
    callbacks: DeliveryCallbackHandler
    dispatcher: QueueDispatcher
    tasks: TaskService


def build_draft(due_in: timedelta = timedelta(hours=30), **overrides) -> TaskDraft:
    """相对 T0 构造创建请求"""
    data = {
        "title": "Prepare quarterly report",
        "assignee_email": "alice@example.com",
        "assignee_name": "Alice",
        "due_date": T0 + due_in,
        "priority": "high",
    }
    data.update(overrides)
    return TaskDraft(**data)


@pytest.fixture
def make_draft():
    return build_draft


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def echo_sink() -> EchoSinkAdapter:
    return EchoSinkAdapter()


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    group = await create_store_group(str(tmp_path / "gateway.db"))
    yield group
    await group.conn.close()


@pytest.fixture
def make_stack(store_group, clock):
    """按需装配服务栈（sink 与派发参数可替换）"""

    def _make(sink=None, **dispatcher_kwargs) -> ServiceStack:
        builder = PayloadBuilder(FRONTEND, PUBLIC)
        callbacks = DeliveryCallbackHandler(store_group, clock=clock)
        dispatcher_kwargs.setdefault("timeout_s", 0.2)
        dispatcher = QueueDispatcher(
            store_group, sink, callbacks, builder, clock=clock, **dispatcher_kwargs
        )
        tasks = TaskService(store_group, dispatcher, frontend_url=FRONTEND, clock=clock)
        return ServiceStack(store_group, sink, clock, builder, callbacks, dispatcher, tasks)

    return _make


@pytest.fixture
def stack(make_stack, echo_sink) -> ServiceStack:
    return make_stack(echo_sink)


@pytest_asyncio.fixture
async def test_app(tmp_path: Path, echo_sink):
    """测试用 app：绕过 lifespan，手动装配 echo sink，调度器不启动"""
    os.environ["CHASER_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["CHASER_FRONTEND_URL"] = FRONTEND
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from chaser.gateway.main import create_app, init_app_state

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    init_app_state(
        app,
        store_group,
        SinkConfig(mode="echo", public_base_url=PUBLIC),
        SchedulerConfig(enabled=False),
        sink=echo_sink,
    )

    yield app

    await store_group.conn.close()
    for key in ["CHASER_DB_PATH", "CHASER_FRONTEND_URL", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
