"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from layer_receipts.main import app
from layer_receipts.routes import health

client = TestClient(app)


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_readyz_endpoint_redis_healthy():
    """Test readiness endpoint when Redis answers."""
    with patch.object(health.redis_client, "ping", AsyncMock(return_value=True)):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["redis"]["ok"] is True
    assert isinstance(data["checks"]["redis"]["latency_ms"], (int, float))


def test_readyz_endpoint_redis_unhealthy():
    """Webhooks cannot be processed without Redis, so readiness fails."""
    with patch.object(health.redis_client, "ping", AsyncMock(return_value=False)):
        response = client.get("/readyz")

    assert response.status_code == 503
    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["redis"]["ok"] is False


def test_readyz_endpoint_redis_error():
    with patch.object(health.redis_client, "ping", AsyncMock(side_effect=ConnectionError("refused"))):
        response = client.get("/readyz")

    assert response.status_code == 503
    assert "ConnectionError" in response.json()["checks"]["redis"]["error"]
