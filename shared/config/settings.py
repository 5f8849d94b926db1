"""
Service settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings with defaults for local development."""

    # Name used in lifecycle log lines
    writer_name: str = "redis-writer"

    # Redis target: either host+port or a unix socket path.
    # The socket path takes precedence when set.
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_path: str = ""
    redis_password: str = ""  # Empty = no AUTH after connect
    redis_socket_timeout: float = 5.0  # Connect and read/write timeout in seconds

    # Periodic work, routed through the work queue
    redis_reconnect_interval: float = 15.0
    redis_subscription_interval: float = 15.0

    # Event bodies are ephemeral; consumers must pick them up within the TTL
    redis_event_ttl: int = 3600

    # Warn if a work item waited longer than this in the queue
    work_queue_staleness_threshold: float = 5.0

    # Optional Icinga 2 API event stream (empty URL = disabled)
    icinga_api_url: str = ""
    icinga_api_user: str = ""
    icinga_api_password: str = ""
    icinga_api_verify_tls: bool = True
    icinga_api_timeout: float = 10.0  # Connect timeout; the stream itself has no read timeout

    # Health/metrics HTTP listener
    http_host: str = "0.0.0.0"
    http_port: int = 8002

    # Environment
    environment: str = "development"
    debug: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def uses_unix_socket(self) -> bool:
        return bool(self.redis_path)

    def validate_store_target(self) -> list[str]:
        """
        Validate the store target and timing settings.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if not self.redis_path:
            if not self.redis_host:
                errors.append("Either REDIS_HOST or REDIS_PATH must be set")
            if not 0 < self.redis_port < 65536:
                errors.append(f"REDIS_PORT must be between 1 and 65535, got {self.redis_port}")

        if self.redis_reconnect_interval <= 0:
            errors.append("REDIS_RECONNECT_INTERVAL must be positive")
        if self.redis_subscription_interval <= 0:
            errors.append("REDIS_SUBSCRIPTION_INTERVAL must be positive")
        if self.redis_event_ttl <= 0:
            errors.append("REDIS_EVENT_TTL must be a positive number of seconds")

        if self.icinga_api_url and not self.icinga_api_url.startswith(("http://", "https://")):
            errors.append("ICINGA_API_URL must start with http:// or https://")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
