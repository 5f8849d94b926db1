"""
Redis constants and configuration.
Centralizes TTLs and key names shared by the writer and its consumers.
"""

# =============================================================================
# TTL (Time To Live) Constants (in seconds)
# =============================================================================

# Event bodies are ephemeral, not an archive
EVENT_TTL = 3600  # 1 hour


# =============================================================================
# Keys
# =============================================================================

# Atomic counter handing out event indices (INCR)
KEY_EVENT_INDEX = "icinga:event.idx"

# Hash of subscriber id -> JSON filter record (HGETALL)
KEY_SUBSCRIPTIONS = "icinga:subscription"

PREFIX_EVENT_BODY = "icinga:event."
PREFIX_SUBSCRIBER_LIST = "icinga:event:"


def get_event_key(index: int) -> str:
    """Key holding the JSON body of the event with the given index."""
    return f"{PREFIX_EVENT_BODY}{index}"


def get_subscriber_list_key(subscriber_id: str) -> str:
    """Per-subscriber delivery list; new indices are pushed to the head."""
    return f"{PREFIX_SUBSCRIBER_LIST}{subscriber_id}"
