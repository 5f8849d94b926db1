"""
Store Connection.

Owns the single logical connection to Redis used by the writer.
Exposes connect / execute / close with an explicit state, and translates
redis-py exceptions into StoreError at this boundary only.

The connection object is not safe for concurrent use. Only the work queue
worker may call into it (see redis_writer.core.work_queue).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

import redis.exceptions
from redis.asyncio.connection import Connection, UnixDomainSocketConnection
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff

from shared.config.logging import get_logger
from shared.config.settings import Settings
from redis_writer.components.connection.errors import StoreError, StoreErrorKind

logger = get_logger(__name__)

# Transport-level failures: the socket is gone or never came up
_TRANSPORT_ERRORS = (
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    ConnectionError,
    TimeoutError,
    OSError,
)

# RESP2 handshake sends nothing; RESP3 would send HELLO before AUTH
RESP_PROTOCOL = 2


class ConnectionState(str, Enum):
    """States of the store connection."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class StoreTarget:
    """
    Where and how to reach the store.

    Host/port and unix socket path are mutually exclusive; a non-empty
    path wins.
    """

    host: str = "127.0.0.1"
    port: int = 6379
    path: str = ""
    password: str = ""
    socket_timeout: float | None = 5.0

    @property
    def uses_unix_socket(self) -> bool:
        return bool(self.path)

    def describe(self) -> str:
        """Target for log lines (never includes the password)."""
        if self.uses_unix_socket:
            return f"unix://{self.path}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreTarget":
        return cls(
            host=settings.redis_host,
            port=settings.redis_port,
            path=settings.redis_path,
            password=settings.redis_password,
            socket_timeout=settings.redis_socket_timeout,
        )


class RawConnection(Protocol):
    """The subset of redis-py's asyncio connection the writer relies on."""

    async def connect(self) -> None: ...

    async def send_command(self, *args: Any, **kwargs: Any) -> None: ...

    async def read_response(self, *args: Any, **kwargs: Any) -> Any: ...

    async def disconnect(self, *args: Any, **kwargs: Any) -> None: ...


ConnectionFactory = Callable[[StoreTarget], RawConnection]


def create_redis_connection(target: StoreTarget) -> RawConnection:
    """
    Build an unconnected redis-py connection for the target.

    - retries disabled: a failed command surfaces immediately
    - no password here: AUTH is issued explicitly by StoreConnection
    - RESP2 and no driver info: the handshake sends nothing (no HELLO,
      no CLIENT SETINFO), so AUTH is the first command on the wire and
      HGETALL replies are flat lists
    """
    common: dict[str, Any] = {
        "socket_timeout": target.socket_timeout,
        "socket_connect_timeout": target.socket_timeout,
        "decode_responses": True,
        "retry": Retry(NoBackoff(), 0),
        "protocol": RESP_PROTOCOL,
        "driver_info": None,
    }
    if target.uses_unix_socket:
        return UnixDomainSocketConnection(path=target.path, **common)
    return Connection(host=target.host, port=target.port, **common)


class StoreConnection:
    """
    Single logical connection to the store.

    States:
    - DISCONNECTED: No transport. execute() fails with DISCONNECTED.
    - CONNECTED: Transport established (and authenticated, if a password
                 is configured).

    Any failure during connect leaves the connection DISCONNECTED with the
    transport released. Any failure during execute tears the connection
    down before the error is raised; there are no internal retries.

    Usage:
        connection = StoreConnection(StoreTarget(host="redis", port=6379))
        await connection.connect()
        index = await connection.execute("INCR", "icinga:event.idx", expect=int)
    """

    def __init__(
        self,
        target: StoreTarget,
        connection_factory: ConnectionFactory = create_redis_connection,
    ) -> None:
        self._target = target
        self._factory = connection_factory
        self._conn: RawConnection | None = None

        # Metrics
        self._connects = 0
        self._disconnects = 0
        self._commands = 0

    @property
    def target(self) -> StoreTarget:
        return self._target

    @property
    def state(self) -> ConnectionState:
        if self._conn is None:
            return ConnectionState.DISCONNECTED
        return ConnectionState.CONNECTED

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """
        Establish the transport and authenticate if a password is set.

        No-op when already connected.

        Raises:
            StoreError: UNREACHABLE if the transport cannot be established,
                AUTH_FAILED if the server rejects the password.
        """
        if self._conn is not None:
            return

        conn = self._factory(self._target)
        try:
            await conn.connect()
        except (*_TRANSPORT_ERRORS, redis.exceptions.RedisError) as e:
            await self._release(conn)
            raise StoreError(
                StoreErrorKind.UNREACHABLE,
                f"Cannot connect to {self._target.describe()}: {e}",
            ) from e

        if self._target.password:
            try:
                reply = await self._roundtrip(conn, "AUTH", self._target.password)
            except (redis.exceptions.ResponseError, redis.exceptions.AuthenticationError) as e:
                # WRONGPASS surfaces as AuthenticationError, a ConnectionError subclass
                await self._release(conn)
                logger.info("AUTH", reply=str(e))
                raise StoreError(
                    StoreErrorKind.AUTH_FAILED,
                    f"AUTH rejected by {self._target.describe()}: {e}",
                    command="AUTH",
                ) from e
            except (*_TRANSPORT_ERRORS, redis.exceptions.RedisError) as e:
                await self._release(conn)
                raise StoreError(
                    StoreErrorKind.UNREACHABLE,
                    f"Connection lost during AUTH: {e}",
                    command="AUTH",
                ) from e
            logger.info("AUTH", reply=reply)

        self._conn = conn
        self._connects += 1

    async def execute(self, *args: Any, expect: type | tuple[type, ...] | None = None) -> Any:
        """
        Send one command and wait for its reply.

        Args:
            *args: Command name followed by its arguments.
            expect: If given, the reply must be an instance of this type.

        Returns:
            The decoded reply.

        Raises:
            StoreError: DISCONNECTED if there is no connection or the
                transport broke, PROTOCOL_ERROR on an error reply, a
                malformed reply or a reply of the wrong type. The
                connection is torn down before any of these is raised.
        """
        command = str(args[0]).upper() if args else ""
        if self._conn is None:
            raise StoreError(
                StoreErrorKind.DISCONNECTED,
                f"{command}: not connected",
                command=command,
            )

        self._commands += 1
        try:
            reply = await self._roundtrip(self._conn, *args)
        except _TRANSPORT_ERRORS as e:
            await self.close()
            raise StoreError(
                StoreErrorKind.DISCONNECTED,
                f"{command}: connection lost: {e}",
                command=command,
            ) from e
        except redis.exceptions.RedisError as e:
            # Error reply (ResponseError) or unparseable reply (InvalidResponse)
            await self.close()
            raise StoreError(
                StoreErrorKind.PROTOCOL_ERROR,
                f"{command}: {e}",
                command=command,
            ) from e

        if expect is not None and not isinstance(reply, expect):
            await self.close()
            raise StoreError(
                StoreErrorKind.PROTOCOL_ERROR,
                f"{command}: unexpected reply type {type(reply).__name__}",
                command=command,
            )

        return reply

    async def close(self) -> None:
        """Release the transport if connected."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        self._disconnects += 1
        await self._release(conn)

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "target": self._target.describe(),
            "connects": self._connects,
            "disconnects": self._disconnects,
            "commands": self._commands,
        }

    @staticmethod
    async def _roundtrip(conn: RawConnection, *args: Any) -> Any:
        await conn.send_command(*args)
        return await conn.read_response()

    @staticmethod
    async def _release(conn: RawConnection) -> None:
        try:
            await conn.disconnect()
        except (redis.exceptions.RedisError, OSError) as e:
            logger.debug("Error releasing store transport", error=str(e))
