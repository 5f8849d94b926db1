"""
Redis Writer main application.

Runs the writer as a background service and exposes health and Prometheus
metrics over HTTP. The writer itself has no HTTP surface for events: they
arrive on the EventBus, fed by the optional Icinga API stream.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.config.logging import get_logger, mask_secret, setup_logging
from shared.config.settings import Settings, get_settings
from redis_writer.components.connection.store import ConnectionFactory, create_redis_connection
from redis_writer.components.events.bus import EventBus
from redis_writer.components.events.icinga_api import IcingaEventStream
from redis_writer.components.metrics.prometheus import generate_prometheus_metrics
from redis_writer.writer import RedisWriter

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    connection_factory: ConnectionFactory = create_redis_connection,
    bus: EventBus | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (cached settings if None).
        connection_factory: Builds the raw Redis connection; tests pass a fake.
        bus: Event bus to forward from (a fresh one if None).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts:
        - RedisWriter (work queue, timers, event source)
        - Icinga API event stream, if configured
        """
        setup_logging()

        errors = settings.validate_store_target()
        if errors:
            for error in errors:
                logger.error("Invalid configuration", error=error)
            raise RuntimeError(f"Invalid configuration: {'; '.join(errors)}")

        logger.info(
            "Starting Redis Writer",
            name=settings.writer_name,
            env=settings.environment,
            redis_password=mask_secret(settings.redis_password),
        )

        event_bus = bus or EventBus()
        writer = RedisWriter.from_settings(settings, event_bus, connection_factory)
        api_stream = (
            IcingaEventStream.from_settings(settings, event_bus)
            if settings.icinga_api_url
            else None
        )

        app.state.bus = event_bus
        app.state.writer = writer
        app.state.api_stream = api_stream

        await writer.start()
        if api_stream is not None:
            api_stream.start()

        yield

        logger.info("Shutting down Redis Writer")
        if api_stream is not None:
            await api_stream.stop()
        await writer.stop()

    app = FastAPI(
        title="Redis Writer",
        description="Forwards monitoring events into Redis for subscribers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health")
    def health_check(request: Request):
        """Basic health check endpoint."""
        writer: RedisWriter = request.app.state.writer
        return {
            "status": "healthy",
            "service": "redis-writer",
            "version": app.version,
            "environment": settings.environment,
            "store": writer.connection.state.value,
            "subscribers": len(writer.registry),
        }

    @app.get("/health/detailed")
    def detailed_health_check(request: Request):
        """Detailed health check; 503 while the store connection is down."""
        writer: RedisWriter = request.app.state.writer
        api_stream: IcingaEventStream | None = request.app.state.api_stream

        checks = {
            "service": "redis-writer",
            "environment": settings.environment,
            "writer": writer.get_stats(),
            "api_stream": api_stream.get_stats() if api_stream is not None else None,
        }
        healthy = writer.connection.is_connected
        checks["status"] = "healthy" if healthy else "degraded"

        if not healthy:
            return JSONResponse(content=checks, status_code=503)
        return checks

    # =========================================================================
    # Prometheus Metrics Endpoint
    # =========================================================================

    @app.get("/metrics")
    def prometheus_metrics(request: Request):
        """
        Prometheus-compatible metrics endpoint.

        Configure Prometheus scrape:
            scrape_configs:
              - job_name: 'redis-writer'
                static_configs:
                  - targets: ['localhost:8002']
        """
        writer: RedisWriter = request.app.state.writer
        return PlainTextResponse(
            content=generate_prometheus_metrics(writer.get_stats()),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


app = create_app()
