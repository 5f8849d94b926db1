"""
Monitoring Event Bus.

In-process registry of named event queues. Producers publish DomainEvents
on the bus; each registered queue accepts only the event types in its
filter and hands every accepted event to each of its clients.

Mirrors the engine's event queue model:
- queues are registered under a unique name
- clients attach to a queue and block in wait_for_event()
- a queue is unregistered only once its last client detached
"""

from __future__ import annotations

import asyncio
from typing import Any, Hashable, Iterable

from shared.config.logging import get_logger
from redis_writer.components.events.types import DomainEvent

logger = get_logger(__name__)


class EventQueue:
    """
    Type-filtered fan-in point for one consumer group.

    Each client gets its own unbounded asyncio.Queue so a slow client
    never blocks the producer or other clients.
    """

    def __init__(self, name: str, types: Iterable[str] = ()) -> None:
        self._name = name
        self._types: frozenset[str] = frozenset(types)
        self._clients: dict[Hashable, asyncio.Queue[DomainEvent]] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def types(self) -> frozenset[str]:
        return self._types

    def set_types(self, types: Iterable[str]) -> None:
        self._types = frozenset(types)

    def can_process(self, event_type: str) -> bool:
        return event_type in self._types

    def add_client(self, client: Hashable) -> None:
        if client in self._clients:
            raise ValueError(f"Client already attached to queue '{self._name}'")
        self._clients[client] = asyncio.Queue()

    def remove_client(self, client: Hashable) -> None:
        self._clients.pop(client, None)

    @property
    def is_unused(self) -> bool:
        return not self._clients

    def process_event(self, event: DomainEvent) -> None:
        """Hand the event to every attached client."""
        for client_queue in self._clients.values():
            client_queue.put_nowait(event)

    async def wait_for_event(self, client: Hashable, timeout: float | None = None) -> DomainEvent | None:
        """
        Block until an event is available for the client.

        Args:
            client: An attached client.
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            The next event, or None on timeout.

        Raises:
            KeyError: If the client is not attached.
        """
        client_queue = self._clients[client]
        if timeout is None:
            return await client_queue.get()
        try:
            return await asyncio.wait_for(client_queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def pending(self, client: Hashable) -> int:
        client_queue = self._clients.get(client)
        return client_queue.qsize() if client_queue is not None else 0


class EventBus:
    """
    Registry of named EventQueues.

    Usage:
        bus = EventBus()
        queue = EventQueue("writer-1", {"StateChange"})
        bus.register(queue.name, queue)
        bus.publish(DomainEvent.create("StateChange", host="web1"))
    """

    def __init__(self) -> None:
        self._queues: dict[str, EventQueue] = {}
        self._published = 0
        self._undelivered = 0

    def register(self, name: str, queue: EventQueue) -> None:
        if name in self._queues:
            raise ValueError(f"Event queue '{name}' already registered")
        self._queues[name] = queue
        logger.debug("Event queue registered", queue=name, types=sorted(queue.types))

    def unregister_if_unused(self, name: str, queue: EventQueue) -> bool:
        """Remove the queue if it is the registered one and has no clients."""
        if self._queues.get(name) is queue and queue.is_unused:
            del self._queues[name]
            logger.debug("Event queue unregistered", queue=name)
            return True
        return False

    def get_queue(self, name: str) -> EventQueue | None:
        return self._queues.get(name)

    def publish(self, event: DomainEvent) -> int:
        """
        Deliver an event to every queue that accepts its type.

        Returns:
            Number of queues the event was delivered to.
        """
        self._published += 1
        delivered = 0
        for queue in list(self._queues.values()):
            if queue.can_process(event.event_type):
                queue.process_event(event)
                delivered += 1
        if delivered == 0:
            self._undelivered += 1
        return delivered

    def get_stats(self) -> dict[str, Any]:
        return {
            "queues": len(self._queues),
            "published": self._published,
            "undelivered": self._undelivered,
        }
