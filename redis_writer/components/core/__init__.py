"""Core components: constants."""

from redis_writer.components.core.constants import WriterConstants

__all__ = [
    "WriterConstants",
]
