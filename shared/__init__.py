"""
Shared module for code common to the writer service and its CLI.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging

- shared.infrastructure: Cross-cutting runtime support
  - log_context.py: Work item tagging for log records
  - redis/constants.py: Redis key names and TTLs

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.infrastructure.redis.constants import KEY_EVENT_INDEX, get_event_key
"""
