"""
Event Source Adapter.

Pulls domain events from the monitoring event bus and schedules one
publish work item per event. Never touches the store connection.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Iterable

from shared.config.logging import get_logger
from redis_writer.components.core.constants import WriterConstants
from redis_writer.components.events.bus import EventBus, EventQueue
from redis_writer.components.events.types import FORWARDED_EVENT_TYPES, DomainEvent
from redis_writer.components.metrics.collector import WriterMetrics
from redis_writer.core.work_queue import WorkQueue

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[Any]]


class EventSourceAdapter:
    """
    Dedicated loop: wait for the next event, enqueue its publish, repeat.

    The adapter registers its own event queue on the bus under a fresh
    unique name, filtered to the forwarded event types. Events outside the
    allow-list are never delivered to it.

    Usage:
        source = EventSourceAdapter(bus, work_queue, publisher.publish)
        source.start()
        ...
        await source.stop()
    """

    def __init__(
        self,
        bus: EventBus,
        work_queue: WorkQueue,
        handler: EventHandler,
        types: Iterable[str] = FORWARDED_EVENT_TYPES,
        metrics: WriterMetrics | None = None,
    ) -> None:
        self._bus = bus
        self._work_queue = work_queue
        self._handler = handler
        self._types = frozenset(types)
        self._metrics = metrics or WriterMetrics()
        self._queue_name = uuid.uuid4().hex
        self._queue: EventQueue | None = None
        self._task: asyncio.Task | None = None

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Register on the bus and start the receive loop.

        Registration happens synchronously so events published right after
        start() returns are already captured.
        """
        if self.is_running:
            return
        queue = self._attach()
        self._task = asyncio.create_task(self._run(queue), name=f"event_source:{self._queue_name}")

    async def stop(self, timeout: float = WriterConstants.TASK_STOP_TIMEOUT) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=timeout)
            except asyncio.CancelledError:
                pass
            except asyncio.TimeoutError:
                logger.warning("Event source did not stop in time", queue=self._queue_name)
        self._detach()

    def _attach(self) -> EventQueue:
        if self._queue is not None:
            return self._queue
        queue = EventQueue(self._queue_name, self._types)
        self._bus.register(self._queue_name, queue)
        queue.add_client(self)
        self._queue = queue
        logger.debug("Event source attached", queue=self._queue_name, types=len(self._types))
        return queue

    def _detach(self) -> None:
        queue, self._queue = self._queue, None
        if queue is None:
            return
        queue.remove_client(self)
        self._bus.unregister_if_unused(self._queue_name, queue)

    async def _run(self, queue: EventQueue) -> None:
        while True:
            event = await queue.wait_for_event(self)
            if event is None:
                continue
            self.dispatch(event)

    def dispatch(self, event: DomainEvent) -> None:
        """Schedule the publish of one event on the work queue."""
        self._metrics.events_received += 1
        self._work_queue.enqueue(
            self._handler,
            event,
            name=f"{WriterConstants.WORK_ITEM_PUBLISH_PREFIX}{event.event_type}",
        )
