"""
Event components.

Event value objects, the in-process event bus and the sources feeding it.
"""

from redis_writer.components.events.types import (
    DomainEvent,
    EventType,
    FORWARDED_EVENT_TYPES,
)
from redis_writer.components.events.bus import EventBus, EventQueue
from redis_writer.components.events.source import EventSourceAdapter
from redis_writer.components.events.icinga_api import IcingaEventStream

__all__ = [
    # Types
    "DomainEvent",
    "EventType",
    "FORWARDED_EVENT_TYPES",
    # Bus
    "EventBus",
    "EventQueue",
    # Sources
    "EventSourceAdapter",
    "IcingaEventStream",
]
