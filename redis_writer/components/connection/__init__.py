"""
Connection components.

Single store connection, its closed error set and the reconnect logic.
"""

from redis_writer.components.connection.errors import (
    StoreError,
    StoreErrorKind,
    SubscriptionDecodeError,
)
from redis_writer.components.connection.store import (
    ConnectionState,
    StoreConnection,
    StoreTarget,
    create_redis_connection,
)
from redis_writer.components.connection.supervisor import ConnectionSupervisor

__all__ = [
    # Errors
    "StoreError",
    "StoreErrorKind",
    "SubscriptionDecodeError",
    # Connection
    "ConnectionState",
    "StoreConnection",
    "StoreTarget",
    "create_redis_connection",
    # Supervision
    "ConnectionSupervisor",
]
