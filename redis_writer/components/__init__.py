"""
Redis Writer Components.

Organized by concern:
- core/          - Constants
- connection/    - Store connection, error kinds, reconnect supervision
- events/        - Event types, in-process event bus, event sources
- subscriptions/ - Subscriber filter table
- resilience/    - Retry with jitter
- metrics/       - Counters and Prometheus exposition

Import from the specific submodules.
"""
