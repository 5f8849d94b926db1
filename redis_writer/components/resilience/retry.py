"""
Retry Utilities.

Exponential backoff with jitter for long-lived streams that reconnect
forever (the optional Icinga API event stream). The store connection does
not use this: it reconnects on the fixed reconnect timer.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final


# Default jitter range: ±25% of calculated delay
DEFAULT_JITTER_FACTOR: Final[float] = 0.25

# Default exponential backoff base
DEFAULT_BACKOFF_BASE: Final[float] = 2.0

# Default initial delay in seconds
DEFAULT_INITIAL_DELAY: Final[float] = 1.0


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        initial_delay: Base delay in seconds.
        max_delay: Maximum delay cap in seconds.
        backoff_base: Exponential backoff multiplier.
        jitter_factor: Random jitter range as fraction (0.25 = ±25%).
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Calculate retry delay with exponential backoff and jitter.

        base_delay = initial_delay * (backoff_base ^ attempt)
        capped_delay = min(base_delay, max_delay)
        final_delay = capped_delay * (1 ± jitter_factor)

    Args:
        attempt: Current attempt number (0-indexed).
        config: Retry configuration (uses defaults if None).

    Returns:
        Delay in seconds with jitter applied, never negative.
    """
    if config is None:
        config = RetryConfig()

    # Large attempt counts would overflow the float power
    exponent = min(attempt, 64)
    capped_delay = min(config.initial_delay * (config.backoff_base ** exponent), config.max_delay)

    jitter_range = capped_delay * config.jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    return max(0.0, capped_delay + jitter)


class Backoff:
    """
    Stateful attempt counter around calculate_delay_with_jitter.

    Usage:
        backoff = Backoff(create_stream_retry_config())
        while True:
            try:
                await consume()
                backoff.reset()
            except StreamError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self) -> float:
        delay = calculate_delay_with_jitter(self._attempt, self._config)
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0


def create_stream_retry_config(max_delay: float = 30.0) -> RetryConfig:
    """Retry config for reconnecting the API event stream."""
    return RetryConfig(
        initial_delay=1.0,
        max_delay=max_delay,
        backoff_base=2.0,
        jitter_factor=0.25,
    )
