"""
Periodic Timer.

Drives the reconnect and subscription-refresh ticks. The callback is a
plain function that only enqueues work; it must not touch the store.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from shared.config.logging import get_logger
from redis_writer.components.core.constants import WriterConstants

logger = get_logger(__name__)


class PeriodicTimer:
    """
    Calls a callback every `interval` seconds on the running event loop.

    The first call happens immediately after start() unless
    `fire_immediately` is False. A callback that raises is logged and
    the timer keeps running.

    Usage:
        timer = PeriodicTimer("reconnect", 15.0, supervisor.on_tick)
        timer.start()
        ...
        await timer.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], None],
        fire_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._name = name
        self._interval = interval
        self._callback = callback
        self._fire_immediately = fire_immediately
        self._task: asyncio.Task | None = None
        self._ticks = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"timer:{self._name}")

    async def stop(self, timeout: float = WriterConstants.TASK_STOP_TIMEOUT) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.CancelledError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Timer did not stop in time", timer=self._name)

    def fire(self) -> None:
        """Invoke the callback once, outside the schedule."""
        self._ticks += 1
        try:
            self._callback()
        except Exception as e:
            logger.error("Timer callback failed", timer=self._name, error=str(e), exc_info=True)

    async def _run(self) -> None:
        if self._fire_immediately:
            self.fire()
        while True:
            await asyncio.sleep(self._interval)
            self.fire()
