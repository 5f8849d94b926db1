"""
Serialized Work Queue.

Single-consumer FIFO queue that serializes every operation touching the
store connection. Reconnect attempts, subscription refreshes and event
publishes all run here, one at a time, in submission order.

There is no per-item timeout: an item that blocks stalls the queue until
the store connection reports a broken transport.
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from shared.config.logging import get_logger
from shared.infrastructure.log_context import work_item_context
from redis_writer.components.core.constants import WriterConstants

logger = get_logger(__name__)

WorkItem = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class _QueuedItem:
    name: str
    func: WorkItem
    enqueued_at: float


class WorkQueue:
    """
    Serialized work queue with exactly one worker task.

    Features:
    - Strict FIFO, no priorities
    - One item runs to completion before the next starts
    - Item failures are logged; the worker never stops on them
    - Staleness warning for items that waited too long

    Usage:
        queue = WorkQueue()
        queue.start()
        queue.enqueue(publisher.publish, event, name="publish:StateChange")
        await queue.join()
        await queue.stop()
    """

    def __init__(
        self,
        name: str = "store",
        staleness_threshold: float = WriterConstants.STALENESS_THRESHOLD,
    ) -> None:
        self._name = name
        self._staleness_threshold = staleness_threshold
        self._queue: asyncio.Queue[_QueuedItem] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

        # Metrics
        self._enqueued = 0
        self._processed = 0
        self._failed = 0
        self._stale = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def pending(self) -> int:
        """Number of items waiting to run."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, func: Callable[..., Awaitable[Any]], *args: Any, name: str | None = None) -> None:
        """
        Append a work item. Never blocks.

        Args:
            func: Coroutine function to run on the worker.
            *args: Positional arguments bound to func.
            name: Name for logs (defaults to the function name).
        """
        item_name = name or getattr(func, "__name__", "work_item")
        bound = functools.partial(func, *args) if args else func
        self._queue.put_nowait(_QueuedItem(item_name, bound, time.monotonic()))
        self._enqueued += 1

    def start(self) -> None:
        """Start the worker task. Must be called from a running event loop."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run(), name=f"work_queue:{self._name}")
        logger.debug("Work queue started", queue=self._name)

    async def join(self) -> None:
        """Wait until every enqueued item has been processed."""
        await self._queue.join()

    async def stop(self, timeout: float = WriterConstants.TASK_STOP_TIMEOUT) -> None:
        """
        Cancel the worker. Items still pending are discarded.
        """
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await asyncio.wait_for(worker, timeout=timeout)
        except asyncio.CancelledError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Work queue worker did not stop in time", queue=self._name)

        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            discarded += 1
        logger.debug("Work queue stopped", queue=self._name, discarded=discarded)

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._execute(item)
            finally:
                self._queue.task_done()

    async def _execute(self, item: _QueuedItem) -> None:
        with work_item_context(item.name):
            wait_time = time.monotonic() - item.enqueued_at
            if wait_time > self._staleness_threshold:
                self._stale += 1
                logger.warning(
                    "Stale work item - waited too long in queue",
                    wait_time_seconds=round(wait_time, 2),
                    threshold_seconds=self._staleness_threshold,
                    queue_size=self._queue.qsize(),
                )

            try:
                await item.func()
                self._processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._failed += 1
                logger.error("Work item failed", error=str(e), exc_info=True)

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "running": self.is_running,
            "pending": self.pending,
            "enqueued": self._enqueued,
            "processed": self._processed,
            "failed": self._failed,
            "stale": self._stale,
        }
