"""
Store Error Kinds.

Closed set of failures the writer distinguishes when talking to Redis.
Every component handles store failures by switching over StoreErrorKind,
never by inspecting redis-py exception types directly.
"""

from __future__ import annotations

from enum import Enum


class StoreErrorKind(str, Enum):
    """Kinds of store failure."""

    UNREACHABLE = "unreachable"  # Transport could not be established
    AUTH_FAILED = "auth_failed"  # AUTH rejected by the server
    PROTOCOL_ERROR = "protocol_error"  # Error reply or reply of unexpected type
    DISCONNECTED = "disconnected"  # No live connection, or it broke mid-command
    DECODE_ERROR = "decode_error"  # A stored record could not be parsed


class StoreError(Exception):
    """
    Failure of a store operation.

    Attributes:
        kind: Which failure this is.
        command: Name of the command that failed, if any.
    """

    def __init__(
        self,
        kind: StoreErrorKind,
        message: str,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.command = command

    @property
    def drops_connection(self) -> bool:
        """Whether this failure leaves the connection torn down."""
        return self.kind in {
            StoreErrorKind.UNREACHABLE,
            StoreErrorKind.AUTH_FAILED,
            StoreErrorKind.PROTOCOL_ERROR,
            StoreErrorKind.DISCONNECTED,
        }

    def __repr__(self) -> str:
        return f"StoreError(kind={self.kind.value!r}, command={self.command!r}, message={str(self)!r})"


class SubscriptionDecodeError(StoreError):
    """A subscriber's filter record could not be decoded."""

    def __init__(self, subscriber_id: str, message: str) -> None:
        super().__init__(StoreErrorKind.DECODE_ERROR, message, command="HGETALL")
        self.subscriber_id = subscriber_id
