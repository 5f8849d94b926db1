"""
Redis Writer Constants.

Centralized defaults with a short note on where each value comes from.
Runtime values are read from shared.config.settings, which can override
the timing defaults via environment variables.
"""

from typing import Final

__all__ = [
    "WriterConstants",
]


class WriterConstants:
    """
    Redis writer operational constants.

    Configurable via settings.py:
    - RECONNECT_INTERVAL -> settings.redis_reconnect_interval
    - SUBSCRIPTION_REFRESH_INTERVAL -> settings.redis_subscription_interval
    - STALENESS_THRESHOLD -> settings.work_queue_staleness_threshold

    Not configurable (internal implementation details):
    - Shutdown timeouts
    - API stream backoff parameters
    """

    # ==========================================================================
    # Timer Constants
    # ==========================================================================

    # RECONNECT_INTERVAL: 15 seconds
    # A disconnected writer drops every event until the next tick, so the
    # interval bounds the length of an outage as seen by subscribers.
    RECONNECT_INTERVAL: Final[float] = 15.0

    # SUBSCRIPTION_REFRESH_INTERVAL: 15 seconds
    # New or changed subscriber filters take effect within one interval.
    SUBSCRIPTION_REFRESH_INTERVAL: Final[float] = 15.0

    # ==========================================================================
    # Work Queue Constants
    # ==========================================================================

    # STALENESS_THRESHOLD: 5 seconds
    # Items normally wait milliseconds. A multi-second wait means the store
    # is slow and events are piling up behind a blocked command.
    STALENESS_THRESHOLD: Final[float] = 5.0

    # WORK_ITEM_RECONNECT / WORK_ITEM_SUBSCRIPTIONS: names used in log context
    WORK_ITEM_RECONNECT: Final[str] = "reconnect"
    WORK_ITEM_SUBSCRIPTIONS: Final[str] = "subscriptions"
    WORK_ITEM_PUBLISH_PREFIX: Final[str] = "publish:"

    # ==========================================================================
    # Shutdown Constants
    # ==========================================================================

    # TASK_STOP_TIMEOUT: 5 seconds
    # Upper bound for a cancelled background task to finish its cleanup.
    TASK_STOP_TIMEOUT: Final[float] = 5.0

    # ==========================================================================
    # Icinga API Stream Constants
    # ==========================================================================

    # API_STREAM_MAX_DELAY: 30 seconds
    # Cap for the reconnect backoff of the optional API event stream.
    API_STREAM_MAX_DELAY: Final[float] = 30.0

    # API_STREAM_MAX_LINE: 1 MB
    # A single event line larger than this is discarded as malformed.
    API_STREAM_MAX_LINE: Final[int] = 1024 * 1024
