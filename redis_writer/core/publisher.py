"""
Event Publisher.

Turns one domain event into the store command sequence:

    INCR   icinga:event.idx              -> index
    SET    icinga:event.<index> <body>
    EXPIRE icinga:event.<index> <ttl>
    LPUSH  icinga:event:<subscriber> <index>   (once per matching subscriber)

The body is stored and its TTL set before any subscriber list references
the index, so consumers never pop an index whose body is missing.

Delivery is at-most-once and best-effort: a failed command drops the
connection (inside StoreConnection.execute) and abandons the remaining
steps. A consumed index is never reclaimed, so indices may have gaps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shared.config.logging import get_logger
from shared.infrastructure.redis.constants import (
    EVENT_TTL,
    KEY_EVENT_INDEX,
    get_event_key,
    get_subscriber_list_key,
)
from redis_writer.components.connection.errors import StoreError
from redis_writer.components.connection.store import StoreConnection
from redis_writer.components.events.types import DomainEvent
from redis_writer.components.metrics.collector import WriterMetrics
from redis_writer.components.subscriptions.registry import SubscriptionRegistry

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PublishResult:
    """
    Outcome of publishing one event.

    Attributes:
        index: Index allocated for the event, None if allocation failed.
        delivered: Subscribers whose list received the index.
        skipped: Matching subscribers not reached because fan-out aborted.
        dropped: True if the body was never stored.
    """

    index: int | None = None
    delivered: tuple[str, ...] = ()
    skipped: int = 0
    dropped: bool = False

    @property
    def complete(self) -> bool:
        return not self.dropped and self.skipped == 0


class EventPublisher:
    """
    Publishes events on the store connection. Runs on the work queue worker.

    publish() never raises for store failures; it logs them and returns a
    PublishResult describing how far the event got.
    """

    def __init__(
        self,
        connection: StoreConnection,
        registry: SubscriptionRegistry,
        event_ttl: int = EVENT_TTL,
        metrics: WriterMetrics | None = None,
    ) -> None:
        self._connection = connection
        self._registry = registry
        self._event_ttl = event_ttl
        self._metrics = metrics or WriterMetrics()
        self._last_index: int | None = None

    @property
    def last_index(self) -> int | None:
        """Highest index allocated by this publisher."""
        return self._last_index

    async def publish(self, event: DomainEvent) -> PublishResult:
        if not self._connection.is_connected:
            return self._drop(event, "store not connected")

        # 1. Allocate index
        try:
            index = await self._connection.execute("INCR", KEY_EVENT_INDEX, expect=int)
        except StoreError as e:
            return self._drop(event, str(e), kind=e.kind.value)

        if self._last_index is not None and index <= self._last_index:
            # The counter went backwards (key deleted or store replaced)
            logger.warning(
                "Event index did not increase",
                index=index,
                last_index=self._last_index,
            )
        self._last_index = index

        # 2. Persist body with TTL
        key = get_event_key(index)
        try:
            await self._connection.execute("SET", key, event.to_json())
            await self._connection.execute("EXPIRE", key, self._event_ttl)
        except StoreError as e:
            return self._drop(event, str(e), kind=e.kind.value, index=index)

        self._metrics.events_published += 1

        # 3. Fan-out
        subscribers = self._registry.lookup(event.event_type)
        delivered: list[str] = []
        for subscriber_id in subscribers:
            try:
                await self._connection.execute("LPUSH", get_subscriber_list_key(subscriber_id), index)
            except StoreError as e:
                skipped = len(subscribers) - len(delivered)
                self._metrics.fanout_aborted += 1
                logger.warning(
                    "Fan-out aborted",
                    event_type=event.event_type,
                    index=index,
                    subscriber_id=subscriber_id,
                    kind=e.kind.value,
                    error=str(e),
                    skipped=skipped,
                )
                return PublishResult(index=index, delivered=tuple(delivered), skipped=skipped)
            delivered.append(subscriber_id)
            self._metrics.fanout_pushes += 1

        return PublishResult(index=index, delivered=tuple(delivered))

    def _drop(
        self,
        event: DomainEvent,
        reason: str,
        kind: str | None = None,
        index: int | None = None,
    ) -> PublishResult:
        self._metrics.events_dropped += 1
        logger.warning(
            "Dropping event",
            event_type=event.event_type,
            index=index,
            kind=kind,
            reason=reason,
        )
        return PublishResult(index=index, dropped=True)

    def get_stats(self) -> dict[str, Any]:
        return {
            "last_index": self._last_index,
            "event_ttl": self._event_ttl,
        }
