"""
Connection Supervisor.

Reconnection state machine for the store connection:

    DISCONNECTED --(tick, connect succeeds)--> CONNECTED
    CONNECTED --(execute reports DISCONNECTED/PROTOCOL_ERROR)--> DISCONNECTED

The transition back to DISCONNECTED happens inside StoreConnection.execute.
The supervisor only drives the way up. It retries forever; failures are
logged and never fatal.
"""

from __future__ import annotations

from typing import Any

from shared.config.logging import get_logger
from redis_writer.components.connection.errors import StoreError
from redis_writer.components.connection.store import StoreConnection
from redis_writer.components.core.constants import WriterConstants
from redis_writer.components.metrics.collector import WriterMetrics
from redis_writer.core.work_queue import WorkQueue

logger = get_logger(__name__)


class ConnectionSupervisor:
    """
    Re-establishes the store connection on every tick while it is down.

    on_tick() is the timer callback: it only enqueues a reconnect attempt,
    so the attempt runs on the work queue worker and never overlaps a
    publish or refresh.
    """

    def __init__(
        self,
        connection: StoreConnection,
        work_queue: WorkQueue,
        metrics: WriterMetrics | None = None,
    ) -> None:
        self._connection = connection
        self._work_queue = work_queue
        self._metrics = metrics or WriterMetrics()
        self._consecutive_failures = 0
        self._last_error: StoreError | None = None

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_error(self) -> StoreError | None:
        return self._last_error

    def on_tick(self) -> None:
        """Timer callback: schedule a reconnect attempt on the work queue."""
        self._work_queue.enqueue(
            self.try_to_reconnect,
            name=WriterConstants.WORK_ITEM_RECONNECT,
        )

    async def try_to_reconnect(self) -> bool:
        """
        Connect if currently disconnected. Runs on the work queue worker.

        Returns:
            True if the connection is up after the attempt.
        """
        if self._connection.is_connected:
            return True

        target = self._connection.target.describe()
        logger.info("Trying to connect to redis server", target=target)
        self._metrics.reconnect_attempts += 1

        try:
            await self._connection.connect()
        except StoreError as e:
            self._consecutive_failures += 1
            self._last_error = e
            self._metrics.reconnect_failures += 1
            logger.warning(
                "Connection error",
                target=target,
                kind=e.kind.value,
                error=str(e),
                consecutive_failures=self._consecutive_failures,
            )
            return False

        if self._consecutive_failures:
            logger.info(
                "Reconnected to redis server",
                target=target,
                after_failures=self._consecutive_failures,
            )
        else:
            logger.info("Connected to redis server", target=target)
        self._consecutive_failures = 0
        self._last_error = None
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._connection.state.value,
            "consecutive_failures": self._consecutive_failures,
            "last_error": self._last_error.kind.value if self._last_error else None,
        }
