"""
Icinga 2 API Event Stream.

Feeds the EventBus from a running Icinga 2 instance:

    POST {api_url}/v1/events  {"queue": <name>, "types": [...]}

The API answers with a never-ending stream of newline-delimited JSON
objects, one per event, each carrying its kind under "type". Every line is
converted to a DomainEvent and published on the bus; the writer's own
EventSourceAdapter picks it up from there.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Iterable

import httpx

from shared.config.logging import get_logger, mask_secret
from shared.config.settings import Settings
from redis_writer.components.core.constants import WriterConstants
from redis_writer.components.events.bus import EventBus
from redis_writer.components.events.types import FORWARDED_EVENT_TYPES, DomainEvent
from redis_writer.components.resilience.retry import (
    Backoff,
    RetryConfig,
    create_stream_retry_config,
)

logger = get_logger(__name__)


class IcingaEventStream:
    """
    Long-lived consumer of the Icinga 2 API event stream.

    Stream errors (refused connection, non-2xx status, dropped stream) are
    logged and retried with exponential backoff plus jitter. The backoff
    resets once a stream has delivered at least one event.

    Usage:
        stream = IcingaEventStream.from_settings(settings, bus)
        stream.start()
        ...
        await stream.stop()
    """

    def __init__(
        self,
        bus: EventBus,
        api_url: str,
        *,
        user: str = "",
        password: str = "",
        verify_tls: bool = True,
        connect_timeout: float = 10.0,
        types: Iterable[str] = FORWARDED_EVENT_TYPES,
        queue_name: str | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bus = bus
        self._api_url = api_url.rstrip("/")
        self._auth = (user, password) if user else None
        self._verify_tls = verify_tls
        # No read timeout: the stream may be idle for a long time
        self._timeout = httpx.Timeout(connect_timeout, read=None)
        self._types = sorted(types)
        self._queue_name = queue_name or f"redis-writer-{uuid.uuid4().hex}"
        self._backoff = Backoff(retry_config or create_stream_retry_config(WriterConstants.API_STREAM_MAX_DELAY))
        self._transport = transport
        self._task: asyncio.Task | None = None

        self._events_received = 0
        self._lines_skipped = 0
        self._stream_errors = 0

    @classmethod
    def from_settings(cls, settings: Settings, bus: EventBus) -> "IcingaEventStream":
        return cls(
            bus,
            settings.icinga_api_url,
            user=settings.icinga_api_user,
            password=settings.icinga_api_password,
            verify_tls=settings.icinga_api_verify_tls,
            connect_timeout=settings.icinga_api_timeout,
            queue_name=f"{settings.writer_name}-{uuid.uuid4().hex}",
        )

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"icinga_api:{self._queue_name}")
        logger.info(
            "Icinga API event stream started",
            url=self._api_url,
            user=self._auth[0] if self._auth else None,
            password=mask_secret(self._auth[1] if self._auth else ""),
        )

    async def stop(self, timeout: float = WriterConstants.TASK_STOP_TIMEOUT) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.CancelledError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Icinga API event stream did not stop in time")
        logger.info("Icinga API event stream stopped", events_received=self._events_received)

    async def _run(self) -> None:
        while True:
            try:
                received = await self.consume_once()
                if received:
                    self._backoff.reset()
                logger.warning("Icinga API event stream ended", events=received)
            except httpx.HTTPStatusError as e:
                self._stream_errors += 1
                logger.warning(
                    "Icinga API rejected the event stream",
                    status=e.response.status_code,
                    url=self._api_url,
                )
            except httpx.HTTPError as e:
                self._stream_errors += 1
                logger.warning(
                    "Icinga API event stream error",
                    error=str(e),
                    error_type=type(e).__name__,
                    url=self._api_url,
                )

            delay = self._backoff.next_delay()
            logger.info("Reconnecting to Icinga API event stream", delay=round(delay, 2), attempt=self._backoff.attempt)
            await asyncio.sleep(delay)

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            auth=self._auth,
            verify=self._verify_tls,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def consume_once(self) -> int:
        """
        Open one event stream and publish its events until it ends.

        Returns:
            Number of events published on the bus.

        Raises:
            httpx.HTTPStatusError: If the API answers with a non-2xx status.
            httpx.HTTPError: On transport failures.
        """
        received = 0
        async with self._build_client() as client:
            async with client.stream(
                "POST",
                f"{self._api_url}/v1/events",
                json={"queue": self._queue_name, "types": self._types},
                headers={"Accept": "application/json"},
            ) as response:
                response.raise_for_status()
                logger.debug("Icinga API event stream open", queue=self._queue_name)
                async for line in response.aiter_lines():
                    event = self.parse_line(line)
                    if event is None:
                        continue
                    self._bus.publish(event)
                    received += 1
                    self._events_received += 1
        return received

    def parse_line(self, line: str) -> DomainEvent | None:
        """Decode one stream line; blank lines yield None, bad lines are logged and skipped."""
        line = line.strip()
        if not line:
            return None

        if len(line) > WriterConstants.API_STREAM_MAX_LINE:
            self._lines_skipped += 1
            logger.warning("Skipping oversized event line", size=len(line))
            return None

        try:
            return DomainEvent.from_dict(json.loads(line))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError subclass
            self._lines_skipped += 1
            logger.warning("Skipping malformed event line", error=str(e), line=line[:200])
            return None

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "queue": self._queue_name,
            "events_received": self._events_received,
            "lines_skipped": self._lines_skipped,
            "stream_errors": self._stream_errors,
        }
