"""WebhookSinkClient -- 外部自动化平台 webhook 调用封装

以 JSON POST 提交 DispatchPayload，严格超时；
配置了共享密钥时附带 X-Chaser-Signature 签名头。
"""

import json
import time

import httpx
import structlog

from .exceptions import SinkNotConfiguredError, SinkRejectedError, SinkUnreachableError
from .models import DispatchPayload, DispatchResult
from .signing import SIGNATURE_HEADER, compute_signature

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 连接类异常类型集合（触发 SinkUnreachableError）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.TransportError,
)


def _extract_execution_id(resp: httpx.Response) -> str | None:
    """尽力从 sink 响应体中提取执行 ID"""
    try:
        data = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("execution_id") or data.get("id")
    return str(value) if value else None


class WebhookSinkClient:
    """Webhook sink 客户端"""

    def __init__(
        self,
        webhook_url: str,
        timeout_s: float = 10.0,
        secret: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """初始化 webhook 客户端

        Args:
            webhook_url: 外部自动化平台 webhook 地址
            timeout_s: 单次请求超时（秒）
            secret: 签名密钥，为空时不签名
            transport: 自定义 httpx transport（测试注入 MockTransport）
        """
        self._webhook_url = webhook_url
        self._timeout_s = timeout_s
        self._secret = secret
        self._transport = transport

    @property
    def webhook_url(self) -> str:
        return self._webhook_url

    async def dispatch(self, payload: DispatchPayload) -> DispatchResult:
        """提交派发请求

        Returns:
            DispatchResult（sink 已受理）

        Raises:
            SinkNotConfiguredError: 未配置 webhook 地址
            SinkUnreachableError: 连接失败或超时
            SinkRejectedError: sink 返回非 2xx
        """
        if not self._webhook_url:
            raise SinkNotConfiguredError()

        body = payload.model_dump_json().encode()
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers[SIGNATURE_HEADER] = compute_signature(self._secret, body)

        start_time = time.monotonic()
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout_s
            ) as http_client:
                resp = await http_client.post(self._webhook_url, content=body, headers=headers)
        except _CONNECTION_ERROR_TYPES as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            log.warning(
                "sink_dispatch_unreachable",
                queue_id=payload.queue_id,
                task_id=payload.task_id,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=duration_ms,
            )
            raise SinkUnreachableError(self._webhook_url, e) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if not resp.is_success:
            log.warning(
                "sink_dispatch_rejected",
                queue_id=payload.queue_id,
                task_id=payload.task_id,
                status_code=resp.status_code,
                duration_ms=duration_ms,
            )
            raise SinkRejectedError(resp.status_code, resp.text)

        result = DispatchResult(
            accepted=True,
            status_code=resp.status_code,
            duration_ms=duration_ms,
            execution_id=_extract_execution_id(resp),
            sink="webhook",
        )
        log.info(
            "sink_dispatch_accepted",
            queue_id=payload.queue_id,
            task_id=payload.task_id,
            action_type=payload.action_type,
            status_code=resp.status_code,
            duration_ms=duration_ms,
        )
        return result

    async def health_check(self) -> bool:
        """检查 webhook 可达性

        任意 < 500 的响应都视为可达（多数 webhook 不支持 GET）。

        注意: 此方法不抛出异常，连接类异常内部捕获并返回 False。
        """
        if not self._webhook_url:
            return False
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=HEALTH_CHECK_TIMEOUT_S
            ) as http_client:
                resp = await http_client.get(self._webhook_url)
                return resp.status_code < 500
        except (httpx.HTTPError, OSError) as e:
            log.debug("sink_health_check_failed", url=self._webhook_url, error=str(e))
            return False

