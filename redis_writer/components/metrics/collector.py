"""
Metrics Collector for the Redis Writer.

Plain counters, mutated only from the event loop thread. The work queue
serializes every store operation, so no locking is needed here.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class WriterMetrics:
    """Counters for event forwarding, reconnects and subscription refreshes."""

    # Event pipeline
    events_received: int = 0
    events_published: int = 0
    events_dropped: int = 0
    fanout_pushes: int = 0
    fanout_aborted: int = 0

    # Connection
    reconnect_attempts: int = 0
    reconnect_failures: int = 0

    # Subscriptions
    subscription_refreshes: int = 0
    subscription_refresh_skipped: int = 0
    subscription_decode_errors: int = 0

    def get_snapshot(self) -> dict[str, int]:
        """Copy of all counters."""
        return asdict(self)

    def reset(self) -> None:
        for name, value in asdict(WriterMetrics()).items():
            setattr(self, name, value)

