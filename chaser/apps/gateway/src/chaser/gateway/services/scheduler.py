"""ChaserScheduler -- 后台周期任务

启动后延迟 startup_delay_s 先执行一次 cycle，之后每 interval_s 执行一次。
单个 cycle 的异常只记录日志，不终止循环。
"""

import asyncio
import contextlib

import structlog

from .dispatcher import QueueDispatcher

log = structlog.get_logger()


class ChaserScheduler:
    """dispatch cycle 的定时驱动器"""

    def __init__(
        self,
        dispatcher: QueueDispatcher,
        interval_s: float = 60.0,
        startup_delay_s: float = 5.0,
    ) -> None:
        self._dispatcher = dispatcher
        self._interval_s = interval_s
        self._startup_delay_s = startup_delay_s
        self._task: asyncio.Task | None = None
        self.cycles_run = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        log.info(
            "chaser_scheduler_started",
            interval_s=self._interval_s,
            startup_delay_s=self._startup_delay_s,
        )
        self._task = asyncio.create_task(self._run(), name="chaser-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("chaser_scheduler_stopped", cycles_run=self.cycles_run)

    async def _run(self) -> None:
        await asyncio.sleep(self._startup_delay_s)
        while True:
            await self._tick()
            await asyncio.sleep(self._interval_s)

    async def _tick(self) -> None:
        try:
            await self._dispatcher.run_cycle()
        except Exception:
            log.exception("dispatch_cycle_crashed")
        finally:
            self.cycles_run += 1
