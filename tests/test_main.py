"""
Tests for the health and metrics endpoints.
"""

import time

import pytest
from fastapi.testclient import TestClient

from shared.config.settings import Settings
from redis_writer.main import create_app
from tests.conftest import FakeStore


def wait_for(client: TestClient, path: str, predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(path)
        if predicate(response) or time.monotonic() > deadline:
            return response
        time.sleep(0.01)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def client(store):
    app = create_app(Settings(environment="test"), connection_factory=store.connection_factory)
    with TestClient(app) as test_client:
        yield test_client


class TestHealthEndpoints:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "redis-writer"

    def test_detailed_health_when_connected(self, client):
        response = wait_for(client, "/health/detailed", lambda r: r.status_code == 200)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["writer"]["connection"]["state"] == "connected"
        assert data["api_stream"] is None

    def test_detailed_health_degraded_when_store_down(self):
        store = FakeStore()
        store.refuse_connections(times=1000)
        app = create_app(Settings(environment="test"), connection_factory=store.connection_factory)

        with TestClient(app) as client:
            response = client.get("/health/detailed")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_metrics_exposition(self, client):
        response = wait_for(client, "/metrics", lambda r: "redis_writer_connected 1" in r.text)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "redis_writer_connected 1" in response.text
        assert "# TYPE redis_writer_events_published_total counter" in response.text


class TestStartup:

    def test_invalid_settings_refuse_to_start(self, store):
        app = create_app(Settings(redis_port=0), connection_factory=store.connection_factory)

        with pytest.raises(RuntimeError, match="REDIS_PORT"):
            with TestClient(app):
                pass

        assert store.connections == []
