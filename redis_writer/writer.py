"""
Redis Writer.

Thin orchestrator that wires the forwarding components together:

    EventBus -> EventSourceAdapter -> WorkQueue -> EventPublisher -> StoreConnection

The reconnect and subscription-refresh timers submit their work through
the same WorkQueue, so all three work sources interleave on one worker
and never use the store connection concurrently.
"""

from __future__ import annotations

from typing import Any

from shared.config.logging import get_logger
from shared.config.settings import Settings
from shared.infrastructure.redis.constants import EVENT_TTL
from redis_writer.components.connection.store import (
    ConnectionFactory,
    StoreConnection,
    StoreTarget,
    create_redis_connection,
)
from redis_writer.components.connection.supervisor import ConnectionSupervisor
from redis_writer.components.core.constants import WriterConstants
from redis_writer.components.events.bus import EventBus
from redis_writer.components.events.source import EventSourceAdapter
from redis_writer.components.metrics.collector import WriterMetrics
from redis_writer.components.subscriptions.registry import SubscriptionRegistry
from redis_writer.core.publisher import EventPublisher
from redis_writer.core.timer import PeriodicTimer
from redis_writer.core.work_queue import WorkQueue

logger = get_logger(__name__)


class RedisWriter:
    """
    Forwards monitoring events from an EventBus into Redis.

    Usage:
        writer = RedisWriter.from_settings(settings, bus)
        await writer.start()
        ...
        await writer.stop()
    """

    def __init__(
        self,
        name: str,
        target: StoreTarget,
        bus: EventBus,
        *,
        reconnect_interval: float = WriterConstants.RECONNECT_INTERVAL,
        subscription_interval: float = WriterConstants.SUBSCRIPTION_REFRESH_INTERVAL,
        event_ttl: int = EVENT_TTL,
        staleness_threshold: float = WriterConstants.STALENESS_THRESHOLD,
        connection_factory: ConnectionFactory = create_redis_connection,
    ) -> None:
        self._name = name
        self._bus = bus
        self.metrics = WriterMetrics()

        self.connection = StoreConnection(target, connection_factory)
        self.work_queue = WorkQueue(name, staleness_threshold=staleness_threshold)
        self.supervisor = ConnectionSupervisor(self.connection, self.work_queue, self.metrics)
        self.registry = SubscriptionRegistry(self.connection, self.metrics)
        self.publisher = EventPublisher(self.connection, self.registry, event_ttl, self.metrics)
        self.event_source = EventSourceAdapter(
            bus,
            self.work_queue,
            self.publisher.publish,
            metrics=self.metrics,
        )

        # Reconnect first: both fire immediately, and FIFO order means the
        # first refresh then already sees a connection.
        self._reconnect_timer = PeriodicTimer(
            WriterConstants.WORK_ITEM_RECONNECT,
            reconnect_interval,
            self.supervisor.on_tick,
        )
        self._subscription_timer = PeriodicTimer(
            WriterConstants.WORK_ITEM_SUBSCRIPTIONS,
            subscription_interval,
            self.update_subscriptions_timer_handler,
        )
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        bus: EventBus,
        connection_factory: ConnectionFactory = create_redis_connection,
    ) -> "RedisWriter":
        return cls(
            settings.writer_name,
            StoreTarget.from_settings(settings),
            bus,
            reconnect_interval=settings.redis_reconnect_interval,
            subscription_interval=settings.redis_subscription_interval,
            event_ttl=settings.redis_event_ttl,
            staleness_threshold=settings.work_queue_staleness_threshold,
            connection_factory=connection_factory,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_started(self) -> bool:
        return self._started

    def update_subscriptions_timer_handler(self) -> None:
        """Timer callback: schedule a subscription refresh on the work queue."""
        self.work_queue.enqueue(
            self.registry.refresh,
            name=WriterConstants.WORK_ITEM_SUBSCRIPTIONS,
        )

    async def start(self) -> None:
        if self._started:
            return
        self.work_queue.start()
        self._reconnect_timer.start()
        self._subscription_timer.start()
        self.event_source.start()
        self._started = True
        logger.info(f"'{self._name}' started.", target=self.connection.target.describe())

    async def stop(self) -> None:
        if not self._started:
            return
        await self.event_source.stop()
        await self._reconnect_timer.stop()
        await self._subscription_timer.stop()
        await self.work_queue.stop()
        await self.connection.close()
        self._started = False
        logger.info(f"'{self._name}' stopped.")

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "started": self._started,
            "connection": {
                **self.connection.get_stats(),
                **self.supervisor.get_stats(),
            },
            "work_queue": self.work_queue.get_stats(),
            "subscriptions": self.registry.get_stats(),
            "publisher": self.publisher.get_stats(),
            "event_bus": self._bus.get_stats(),
            "metrics": self.metrics.get_snapshot(),
        }
