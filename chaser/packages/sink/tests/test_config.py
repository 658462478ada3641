"""SinkConfig + load_sink_config 单元测试

验证环境变量映射、默认值、非法值回退。
"""

import pytest
from chaser.sink import EchoSinkAdapter, WebhookSinkClient, create_sink
from chaser.sink.config import SinkConfig, load_sink_config
from pydantic import SecretStr, ValidationError

_ENV_VARS = [
    "CHASER_SINK_MODE",
    "CHASER_SINK_WEBHOOK_URL",
    "CHASER_SINK_TIMEOUT_S",
    "CHASER_BACKEND_PUBLIC_URL",
    "CHASER_CALLBACK_SECRET",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSinkConfig:
    """SinkConfig 数据模型测试"""

    def test_default_values(self):
        config = SinkConfig()
        assert config.mode == "webhook"
        assert config.webhook_url == ""
        assert config.timeout_s == 10
        assert config.public_base_url == "http://localhost:8000"
        assert config.callback_secret.get_secret_value() == ""

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            SinkConfig(timeout_s=0)

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            SinkConfig(mode="smtp")


class TestLoadSinkConfig:
    """环境变量加载"""

    def test_env_mapping(self, monkeypatch):
        monkeypatch.setenv("CHASER_SINK_MODE", "echo")
        monkeypatch.setenv("CHASER_SINK_WEBHOOK_URL", "https://hooks.example.com/chaser")
        monkeypatch.setenv("CHASER_SINK_TIMEOUT_S", "2.5")
        monkeypatch.setenv("CHASER_BACKEND_PUBLIC_URL", "https://api.example.com/")
        monkeypatch.setenv("CHASER_CALLBACK_SECRET", "shh")

        config = load_sink_config()
        assert config.mode == "echo"
        assert config.webhook_url == "https://hooks.example.com/chaser"
        assert config.timeout_s == 2.5
        assert config.public_base_url == "https://api.example.com"
        assert config.callback_secret.get_secret_value() == "shh"

    @pytest.mark.parametrize("value", ["abc", "0", "-3"])
    def test_invalid_timeout_falls_back(self, monkeypatch, value):
        monkeypatch.setenv("CHASER_SINK_TIMEOUT_S", value)
        assert load_sink_config().timeout_s == 10

    def test_invalid_mode_falls_back(self, monkeypatch):
        monkeypatch.setenv("CHASER_SINK_MODE", "carrier-pigeon")
        assert load_sink_config().mode == "webhook"


class TestCreateSink:
    """按配置创建 sink"""

    def test_echo_mode(self):
        assert isinstance(create_sink(SinkConfig(mode="echo")), EchoSinkAdapter)

    def test_webhook_without_url_is_unconfigured(self):
        assert create_sink(SinkConfig()) is None

    def test_webhook_client(self):
        sink = create_sink(
            SinkConfig(webhook_url="https://hooks.example.com", callback_secret=SecretStr("k"))
        )
        assert isinstance(sink, WebhookSinkClient)
        assert sink.webhook_url == "https://hooks.example.com"
