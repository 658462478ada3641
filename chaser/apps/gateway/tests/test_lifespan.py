"""FastAPI lifespan 测试

测试内容：
1. 启动时 DB 初始化、sink / 派发器 / 调度器装配
2. 调度器按配置启动，关闭时停止并清理连接
"""

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from chaser.gateway.main import create_app


@pytest.fixture
def lifespan_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CHASER_DB_PATH", str(tmp_path / "lifespan.db"))
    monkeypatch.setenv("CHASER_SINK_MODE", "echo")
    monkeypatch.setenv("CHASER_DISPATCH_STARTUP_DELAY_S", "60")
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    return tmp_path


class TestLifespan:
    """Lifespan 测试"""

    async def test_startup_wires_state(self, lifespan_env):
        app = create_app()

        async with app.router.lifespan_context(app):
            state = app.state
            assert state.store_group.conn is not None
            assert state.dispatcher.sink is not None
            assert state.sink_config.mode == "echo"
            assert state.scheduler.running is True

            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as client:
                resp = await client.get("/ready")
                assert resp.json()["checks"]["scheduler"] == "running"

            scheduler = state.scheduler

        assert scheduler.running is False
        assert (lifespan_env / "lifespan.db").exists()

    async def test_scheduler_disabled(self, lifespan_env, monkeypatch):
        monkeypatch.setenv("CHASER_SCHEDULER_ENABLED", "false")
        app = create_app()

        async with app.router.lifespan_context(app):
            assert app.state.scheduler.running is False

    async def test_webhook_mode_without_url(self, lifespan_env, monkeypatch):
        monkeypatch.setenv("CHASER_SINK_MODE", "webhook")
        monkeypatch.delenv("CHASER_SINK_WEBHOOK_URL", raising=False)
        monkeypatch.setenv("CHASER_SCHEDULER_ENABLED", "false")
        app = create_app()

        async with app.router.lifespan_context(app):
            assert app.state.dispatcher.sink is None
            result = await app.state.dispatcher.run_cycle()
            assert result.sink_configured is False
