"""
Redis Writer Core Module.

- work_queue: single-worker queue serializing all store access
- timer: periodic timers that submit work to the queue
- publisher: event -> INCR/SET/EXPIRE/LPUSH sequence

Import from the specific submodules.
"""
