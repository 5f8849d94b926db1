"""
Infrastructure module: log context and Redis key layout.
"""
