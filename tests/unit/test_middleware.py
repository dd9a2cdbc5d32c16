"""
Unit tests for middleware components.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from reservations.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client with both middlewares installed."""
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request) -> dict[str, str]:
        return {"request_id": request.state.request_id}

    return TestClient(app)


@pytest.mark.unit
def test_request_id_is_propagated(client: TestClient) -> None:
    """Test that a caller-supplied request ID is echoed back."""
    response = client.get("/test", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["request_id"] == "req-123"


@pytest.mark.unit
def test_request_id_and_timing_headers_are_added(client: TestClient) -> None:
    """Test that every response carries request ID and timing headers."""
    response = client.get("/test")

    assert response.headers["X-Request-ID"] == response.json()["request_id"]
    assert response.headers["X-Response-Time"].endswith("s")


@pytest.mark.unit
def test_security_headers(client: TestClient) -> None:
    """Test that security headers are set."""
    response = client.get("/test")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
