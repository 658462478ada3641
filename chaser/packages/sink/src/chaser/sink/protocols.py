"""DispatchSink Protocol -- WebhookSinkClient 与 EchoSinkAdapter 的共同接口"""

from typing import Protocol

from .models import DispatchPayload, DispatchResult


class DispatchSink(Protocol):
    """外部 dispatch sink 接口"""

    async def dispatch(self, payload: DispatchPayload) -> DispatchResult:
        """提交派发请求

        Raises:
            SinkError: sink 不可达或拒绝请求
        """
        ...

    async def health_check(self) -> bool:
        """sink 可达性探测，不抛异常"""
        ...
