"""
Event Value Objects for the Redis Writer.

Domain events emitted by the monitoring engine, as immutable value objects
with their JSON transport encoding.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Self


class EventType(str, Enum):
    """
    Event kinds the writer forwards to Redis.

    Names match the monitoring engine's event stream types exactly;
    subscriber filter records refer to them by these names.
    """

    # Check execution
    CHECK_RESULT = "CheckResult"
    STATE_CHANGE = "StateChange"
    NOTIFICATION = "Notification"

    # Acknowledgements
    ACKNOWLEDGEMENT_SET = "AcknowledgementSet"
    ACKNOWLEDGEMENT_CLEARED = "AcknowledgementCleared"

    # Comments
    COMMENT_ADDED = "CommentAdded"
    COMMENT_REMOVED = "CommentRemoved"

    # Downtimes
    DOWNTIME_ADDED = "DowntimeAdded"
    DOWNTIME_REMOVED = "DowntimeRemoved"
    DOWNTIME_STARTED = "DowntimeStarted"
    DOWNTIME_TRIGGERED = "DowntimeTriggered"


# Allow-list subscribed on the event bus, for O(1) lookup
FORWARDED_EVENT_TYPES: frozenset[str] = frozenset(e.value for e in EventType)


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """
    Immutable event received from the monitoring engine.

    Attributes:
        event_type: Kind of event ("StateChange", ...).
        attributes: Every other field of the event, read-only.
    """

    event_type: str
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create a DomainEvent from a decoded event object.

        Raises:
            ValueError: If data is not a dict or has no usable "type".
        """
        if not isinstance(data, dict):
            raise ValueError("Event must be a dictionary")

        event_type = data.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Event type must be a non-empty string")

        # Deep copy so later mutation of the source cannot leak in
        attributes = {k: copy.deepcopy(v) for k, v in data.items() if k != "type"}
        return cls(event_type=event_type, attributes=MappingProxyType(attributes))

    @classmethod
    def create(cls, event_type: str | EventType, **attributes: Any) -> Self:
        """Convenience constructor: DomainEvent.create("StateChange", host="web1")."""
        type_name = event_type.value if isinstance(event_type, EventType) else event_type
        return cls.from_dict({"type": type_name, **attributes})

    @property
    def is_forwarded_type(self) -> bool:
        return self.event_type in FORWARDED_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Mutable deep copy including the type field."""
        data = {"type": self.event_type}
        data.update(copy.deepcopy(dict(self.attributes)))
        return data

    def to_json(self) -> str:
        """Serialize to the transport body stored in Redis."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)
