"""
Resilience components.

Retry with exponential backoff and jitter.
"""

from redis_writer.components.resilience.retry import (
    Backoff,
    RetryConfig,
    calculate_delay_with_jitter,
    create_stream_retry_config,
)

__all__ = [
    "Backoff",
    "RetryConfig",
    "calculate_delay_with_jitter",
    "create_stream_retry_config",
]
