"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from chaser.core.config import SchedulerConfig
from chaser.core.store import create_store_group
from chaser.sink import EchoSinkAdapter, SinkConfig
from httpx import ASGITransport, AsyncClient


@pytest.fixture
def echo_sink() -> EchoSinkAdapter:
    return EchoSinkAdapter()


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path, echo_sink):
    """集成测试用 FastAPI app（echo sink，调度器不启动）"""
    os.environ["CHASER_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from chaser.gateway.main import create_app, init_app_state

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    init_app_state(
        app,
        store_group,
        SinkConfig(mode="echo", public_base_url="http://test"),
        SchedulerConfig(enabled=False),
        sink=echo_sink,
    )

    yield app

    await store_group.conn.close()
    os.environ.pop("CHASER_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
