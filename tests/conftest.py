"""
Pytest configuration and fixtures for redis writer tests.

FakeStore is an in-memory stand-in for a Redis server speaking to
redis-py's low-level connection interface (send_command / read_response).
Every command sent on any of its connections is appended to one ordered
log, and individual commands or connects can be scripted to fail.
"""

from __future__ import annotations

import itertools
from collections import deque
from typing import Any

import pytest
from redis.exceptions import AuthenticationError, ConnectionError, ResponseError

from redis_writer.components.connection.store import StoreConnection, StoreTarget
from redis_writer.components.events.types import DomainEvent
from redis_writer.components.metrics.collector import WriterMetrics


class FakeStore:
    """Shared server state for every FakeRedisConnection it creates."""

    def __init__(self, password: str | None = None) -> None:
        self.password = password
        self.strings: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}

        self.commands: list[tuple[str, ...]] = []
        self.connections: list[FakeRedisConnection] = []
        self.targets: list[StoreTarget] = []

        self._command_failures: dict[str, deque[Exception | None]] = {}
        self._connect_failures: deque[Exception] = deque()

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def fail_command(
        self,
        command: str,
        error: Exception | None = None,
        times: int = 1,
        after: int = 0,
    ) -> None:
        """Let `after` invocations of `command` pass, then fail the next `times` with `error`."""
        error = error or ConnectionError("Connection reset by peer")
        queue = self._command_failures.setdefault(command.upper(), deque())
        queue.extend([None] * after + [error] * times)

    def refuse_connections(self, times: int = 1, error: Exception | None = None) -> None:
        error = error or ConnectionError("Error 111 connecting to 127.0.0.1:6379. Connection refused.")
        self._connect_failures.extend(error for _ in range(times))

    def set_subscription(self, subscriber_id: str, record: str) -> None:
        self.hashes.setdefault("icinga:subscription", {})[subscriber_id] = record

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def command_names(self) -> list[str]:
        return [c[0] for c in self.commands]

    def commands_named(self, name: str) -> list[tuple[str, ...]]:
        return [c for c in self.commands if c[0] == name]

    def connection_factory(self, target: StoreTarget) -> "FakeRedisConnection":
        self.targets.append(target)
        conn = FakeRedisConnection(self)
        self.connections.append(conn)
        return conn

    # ------------------------------------------------------------------
    # Server side
    # ------------------------------------------------------------------

    def take_connect_failure(self) -> Exception | None:
        return self._connect_failures.popleft() if self._connect_failures else None

    def take_command_failure(self, command: str) -> Exception | None:
        queue = self._command_failures.get(command)
        return queue.popleft() if queue else None

    def apply(self, conn: "FakeRedisConnection", command: str, args: tuple[str, ...]) -> Any:
        if command == "AUTH":
            if self.password is None:
                return ResponseError("ERR AUTH <password> called without any password configured for the default user.")
            if args[0] != self.password:
                raise AuthenticationError("WRONGPASS invalid username-password pair or user is disabled.")
            conn.authenticated = True
            return "OK"

        if self.password is not None and not conn.authenticated:
            return ResponseError("NOAUTH Authentication required.")

        if command == "INCR":
            value = int(self.strings.get(args[0], "0")) + 1
            self.strings[args[0]] = str(value)
            return value
        if command == "SET":
            self.strings[args[0]] = args[1]
            return "OK"
        if command == "GET":
            return self.strings.get(args[0])
        if command == "EXPIRE":
            if args[0] not in self.strings and args[0] not in self.lists:
                return 0
            self.ttls[args[0]] = int(args[1])
            return 1
        if command == "LPUSH":
            items = self.lists.setdefault(args[0], [])
            for value in args[1:]:
                items.insert(0, value)
            return len(items)
        if command == "HGETALL":
            flat: list[str] = []
            for field, value in self.hashes.get(args[0], {}).items():
                flat.extend((field, value))
            return flat
        return ResponseError(f"ERR unknown command '{command}'")


class FakeRedisConnection:
    """One client connection to a FakeStore."""

    def __init__(self, store: FakeStore) -> None:
        self._store = store
        self._replies: deque[Any] = deque()
        self.connected = False
        self.authenticated = False
        self.disconnects = 0

    async def connect(self) -> None:
        error = self._store.take_connect_failure()
        if error is not None:
            raise error
        self.connected = True

    async def send_command(self, *args: Any, **kwargs: Any) -> None:
        if not self.connected:
            raise ConnectionError("Connection closed by server.")
        command = str(args[0]).upper()
        str_args = tuple(str(a) for a in args[1:])
        self._store.commands.append((command, *str_args))

        error = self._store.take_command_failure(command)
        if error is not None:
            self._replies.append(error)
            return
        try:
            self._replies.append(self._store.apply(self, command, str_args))
        except AuthenticationError as e:
            self._replies.append(e)

    async def read_response(self, *args: Any, **kwargs: Any) -> Any:
        reply = self._replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def disconnect(self, *args: Any, **kwargs: Any) -> None:
        self.connected = False
        self.disconnects += 1
        self._replies.clear()


# =============================================================================
# Fixtures
# =============================================================================


_event_ids = itertools.count(1)


def make_event(event_type: str = "StateChange", **attrs: Any) -> DomainEvent:
    """Build a DomainEvent with a unique id attribute."""
    attrs.setdefault("id", next(_event_ids))
    return DomainEvent.create(event_type, **attrs)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def store_target() -> StoreTarget:
    return StoreTarget(host="127.0.0.1", port=6379)


@pytest.fixture
def metrics() -> WriterMetrics:
    return WriterMetrics()


@pytest.fixture
def connection(fake_store, store_target) -> StoreConnection:
    """Unconnected StoreConnection backed by fake_store."""
    return StoreConnection(store_target, fake_store.connection_factory)
