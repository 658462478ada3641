"""EchoSinkAdapter -- Echo 模式 sink

不发出任何网络请求：受理并记录 payload，用于本地运行和测试。
"""

import asyncio
import time

import structlog

from .models import DispatchPayload, DispatchResult

log = structlog.get_logger()


class EchoSinkAdapter:
    """内存 sink

    dispatched 按受理顺序保存全部 payload，测试可直接断言。
    """

    def __init__(self) -> None:
        self.dispatched: list[DispatchPayload] = []

    async def dispatch(self, payload: DispatchPayload) -> DispatchResult:
        start_time = time.monotonic()

        # 模拟少量延迟
        await asyncio.sleep(0.01)
        self.dispatched.append(payload)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        log.info(
            "echo_sink_dispatched",
            queue_id=payload.queue_id,
            task_id=payload.task_id,
            action_type=payload.action_type,
            escalation_tier=payload.escalation_tier,
        )
        return DispatchResult(
            accepted=True,
            status_code=200,
            duration_ms=duration_ms,
            execution_id=f"echo-{len(self.dispatched)}",
            sink="echo",
        )

    async def health_check(self) -> bool:
        return True

    def payloads_for_task(self, task_id: str) -> list[DispatchPayload]:
        return [p for p in self.dispatched if p.task_id == task_id]
