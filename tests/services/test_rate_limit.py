"""Tests for per-IP rate limiting: key function, 429 responses, exemptions, store fallback."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from promptverse.api.routes import health
from promptverse.core.config import get_settings
from promptverse.middleware.rate_limit import (
    RATE_LIMIT_MESSAGE,
    build_limiter,
    client_ip,
    default_limit,
    limiter,
    setup_rate_limit_middleware,
)

pytestmark = pytest.mark.unit


def _request(headers: dict | None = None, client=("10.0.0.9", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/brand/list",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def _make_app(app_limiter=None) -> FastAPI:
    app = FastAPI()
    setup_rate_limit_middleware(app, app_limiter)
    app.include_router(health.router, prefix="/api")

    @app.get("/api/brand/list")
    async def limited():
        return {"ok": True}

    return app


class TestClientIp:
    def test_first_forwarded_hop(self):
        assert client_ip(_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})) == "203.0.113.7"

    def test_socket_peer_without_proxy(self):
        assert client_ip(_request()) == "10.0.0.9"

    def test_unknown_without_client(self):
        assert client_ip(_request(client=None)) == "unknown"


def test_default_limit_from_settings():
    settings = get_settings()
    assert default_limit() == f"{settings.rate_limit_requests} per {settings.rate_limit_window_seconds} seconds"


class TestRateLimitMiddleware:
    def test_over_limit_returns_429(self):
        app = _make_app(build_limiter(storage_uri="memory://", limit="2 per 1 minute"))
        headers = {"X-Forwarded-For": "198.51.100.1"}

        with TestClient(app) as client:
            assert client.get("/api/brand/list", headers=headers).status_code == 200
            assert client.get("/api/brand/list", headers=headers).status_code == 200
            response = client.get("/api/brand/list", headers=headers)

        assert response.status_code == 429
        assert response.json() == {"detail": RATE_LIMIT_MESSAGE}

    def test_clients_counted_separately(self):
        app = _make_app(build_limiter(storage_uri="memory://", limit="1 per 1 minute"))

        with TestClient(app) as client:
            assert client.get("/api/brand/list", headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200
            assert client.get("/api/brand/list", headers={"X-Forwarded-For": "198.51.100.3"}).status_code == 200
            assert client.get("/api/brand/list", headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 429

    def test_health_exempt_under_default_limit(self):
        limiter.reset()
        app = _make_app()
        headers = {"X-Forwarded-For": "198.51.100.4"}
        budget = get_settings().rate_limit_requests

        with TestClient(app) as client:
            for _ in range(budget + 1):
                assert client.get("/api/health", headers=headers).status_code == 200
            for _ in range(budget):
                assert client.get("/api/brand/list", headers=headers).status_code == 200
            assert client.get("/api/brand/list", headers=headers).status_code == 429

        limiter.reset()

    def test_unreachable_store_does_not_block_requests(self):
        app = _make_app(build_limiter(storage_uri="redis://127.0.0.1:1/0", limit="5 per 1 minute"))

        with TestClient(app) as client:
            for _ in range(3):
                assert client.get("/api/brand/list").status_code == 200
