"""
Redis Writer.

Forwards monitoring events (check results, state changes, notifications,
acknowledgements, comments, downtimes) into Redis, where external
subscribers pick up the event types they registered for.
"""

__version__ = "0.1.0"
