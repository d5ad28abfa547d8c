"""
Test request context, rate limiting and response headers.
"""

import pytest
import structlog
from fastapi import FastAPI
from starlette.testclient import TestClient

from bigwin_admin.api.middleware import (
    RateLimitingMiddleware, RequestContextMiddleware, SecurityHeadersMiddleware
)


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitingMiddleware, max_requests=2, window_seconds=60)
    app.add_middleware(RequestContextMiddleware)

    @app.get("/api/v1/context")
    async def context():
        return structlog.contextvars.get_contextvars()

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/v1/boom")
    async def boom():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def test_request_id_is_bound_and_echoed(client):
    response = client.get("/api/v1/context", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["request_id"] == "req-123"
    assert response.json()["path"] == "/api/v1/context"


def test_request_id_is_generated(client):
    response = client.get("/api/v1/context")

    request_id = response.headers["X-Request-ID"]
    assert len(request_id) == 32
    assert response.json()["request_id"] == request_id


def test_admin_responses_are_not_cached(client):
    response = client.get("/api/v1/context")

    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "Cache-Control" not in client.get("/health").headers


def test_rate_limit_per_api_key(client):
    alice = {"Authorization": "Bearer alice-key"}
    bob = {"Authorization": "Bearer bob-key"}

    assert client.get("/api/v1/context", headers=alice).status_code == 200
    response = client.get("/api/v1/context", headers=alice)
    assert response.headers["X-RateLimit-Remaining"] == "0"

    limited = client.get("/api/v1/context", headers=alice)
    assert limited.status_code == 429
    assert limited.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert int(limited.headers["Retry-After"]) >= 1

    assert client.get("/api/v1/context", headers=bob).status_code == 200


def test_health_is_never_rate_limited(client):
    for _ in range(5):
        assert client.get("/health").status_code == 200


def test_unhandled_error_uses_envelope(client):
    response = client.get("/api/v1/boom", headers={"X-Request-ID": "req-500"})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "INTERNAL_SERVER_ERROR"
    assert body["details"]["request_id"] == "req-500"
