"""
Subscription Registry.

Holds the mapping of subscriber id -> event-type filter, rebuilt wholesale
from the `icinga:subscription` hash on every refresh. Readers always see a
complete table: a refresh builds a new mapping and swaps it in with one
assignment; the installed mapping is never mutated.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from shared.config.logging import get_logger
from shared.infrastructure.redis.constants import KEY_SUBSCRIPTIONS
from redis_writer.components.connection.errors import StoreError, SubscriptionDecodeError
from redis_writer.components.connection.store import StoreConnection
from redis_writer.components.events.types import FORWARDED_EVENT_TYPES
from redis_writer.components.metrics.collector import WriterMetrics

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SubscriptionInfo:
    """One subscriber and the event types it wants."""

    subscriber_id: str
    event_types: frozenset[str]

    def matches(self, event_type: str) -> bool:
        return event_type in self.event_types

    @classmethod
    def from_record(cls, subscriber_id: str, raw: Any) -> "SubscriptionInfo":
        """
        Decode a filter record: a JSON object with a "types" list.

        Type names that are not forwarded event kinds are ignored.

        Raises:
            SubscriptionDecodeError: If the record is not valid.
        """
        try:
            record = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise SubscriptionDecodeError(subscriber_id, f"not valid JSON: {e}") from e

        if not isinstance(record, dict):
            raise SubscriptionDecodeError(subscriber_id, "record must be a JSON object")

        types = record.get("types")
        if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
            raise SubscriptionDecodeError(subscriber_id, "'types' must be a list of strings")

        unknown = [t for t in types if t not in FORWARDED_EVENT_TYPES]
        if unknown:
            logger.debug(
                "Ignoring unknown event types in subscription",
                subscriber_id=subscriber_id,
                unknown_types=unknown,
            )

        return cls(
            subscriber_id=subscriber_id,
            event_types=frozenset(t for t in types if t in FORWARDED_EVENT_TYPES),
        )

    def to_record(self) -> str:
        """Encode as the JSON value stored in the subscription hash."""
        return json.dumps({"types": sorted(self.event_types)})


SubscriptionTable = Mapping[str, SubscriptionInfo]


def decode_subscription_reply(reply: list[Any]) -> tuple[dict[str, SubscriptionInfo], list[SubscriptionDecodeError]]:
    """
    Decode a flat HGETALL reply [key1, value1, key2, value2, ...].

    Returns:
        Tuple of (decoded subscriptions, per-record decode errors).
    """
    table: dict[str, SubscriptionInfo] = {}
    errors: list[SubscriptionDecodeError] = []

    if len(reply) % 2:
        logger.warning("Subscription reply has a dangling key", key=reply[-1])

    for i in range(0, len(reply) - 1, 2):
        subscriber_id, raw = str(reply[i]), reply[i + 1]
        try:
            table[subscriber_id] = SubscriptionInfo.from_record(subscriber_id, raw)
        except SubscriptionDecodeError as e:
            errors.append(e)

    return table, errors


class SubscriptionRegistry:
    """
    Current subscription table plus the refresh that rebuilds it.

    refresh() runs on the work queue worker; lookup() is synchronous,
    in-process and never does I/O.
    """

    def __init__(
        self,
        connection: StoreConnection,
        metrics: WriterMetrics | None = None,
    ) -> None:
        self._connection = connection
        self._metrics = metrics or WriterMetrics()
        self._table: SubscriptionTable = MappingProxyType({})

    @property
    def table(self) -> SubscriptionTable:
        """The installed table (read-only)."""
        return self._table

    def __len__(self) -> int:
        return len(self._table)

    def get(self, subscriber_id: str) -> SubscriptionInfo | None:
        return self._table.get(subscriber_id)

    def lookup(self, event_type: str) -> list[str]:
        """Ids of every subscriber whose filter contains event_type."""
        return [
            subscriber_id
            for subscriber_id, info in self._table.items()
            if info.matches(event_type)
        ]

    async def refresh(self) -> bool:
        """
        Rebuild the table from Redis and install it.

        A no-op while disconnected. Records that fail to decode are logged
        and left out; the rest are still installed.

        Returns:
            True if a new table was installed.
        """
        if not self._connection.is_connected:
            self._metrics.subscription_refresh_skipped += 1
            logger.debug("Skipping subscription refresh, not connected")
            return False

        try:
            reply = await self._connection.execute("HGETALL", KEY_SUBSCRIPTIONS, expect=list)
        except StoreError as e:
            logger.warning(
                "Subscription refresh failed",
                kind=e.kind.value,
                error=str(e),
            )
            return False

        table, errors = decode_subscription_reply(reply)
        for error in errors:
            self._metrics.subscription_decode_errors += 1
            logger.warning(
                "Failed to decode subscription",
                subscriber_id=error.subscriber_id,
                error=str(error),
            )

        changed = dict(self._table) != table
        self._table = MappingProxyType(table)
        self._metrics.subscription_refreshes += 1

        # Only changes are worth INFO; the refresh runs every few seconds
        log = logger.info if changed else logger.debug
        log(
            "Subscriptions refreshed",
            subscribers=len(table),
            skipped=len(errors),
            changed=changed,
        )
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            "subscribers": len(self._table),
        }
