"""Subscription components: subscriber filter table."""

from redis_writer.components.subscriptions.registry import (
    SubscriptionInfo,
    SubscriptionRegistry,
    decode_subscription_reply,
)

__all__ = [
    "SubscriptionInfo",
    "SubscriptionRegistry",
    "decode_subscription_reply",
]
