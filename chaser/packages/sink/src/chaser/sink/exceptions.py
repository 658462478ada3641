"""Sink 异常体系

recoverable=True 表示下一轮调度可以重试（条目保持 pending）。
"""


class SinkError(Exception):
    """Sink 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class SinkUnreachableError(SinkError):
    """Webhook 不可达（连接失败、超时、DNS 解析失败等）"""

    def __init__(self, webhook_url: str, original_error: Exception) -> None:
        """
        Args:
            webhook_url: 尝试连接的 webhook 地址
            original_error: 原始异常
        """
        super().__init__(
            f"Sink webhook 不可达: {webhook_url} -- {original_error!r}",
            recoverable=True,
        )
        self.webhook_url = webhook_url
        self.original_error = original_error


class SinkRejectedError(SinkError):
    """Webhook 返回非 2xx"""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(
            f"Sink webhook 返回 HTTP {status_code}: {body[:200]}",
            recoverable=True,
        )
        self.status_code = status_code
        self.body = body


class SinkNotConfiguredError(SinkError):
    """webhook 模式下未配置 CHASER_SINK_WEBHOOK_URL"""

    def __init__(self, message: str = "CHASER_SINK_WEBHOOK_URL 未配置") -> None:
        super().__init__(message, recoverable=False)
