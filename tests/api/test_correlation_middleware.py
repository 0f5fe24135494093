"""Tests for correlation IDs, error envelopes and health on the real app."""

import uuid

import pytest
from fastapi.testclient import TestClient

from activation_gate.main import app

pytestmark = pytest.mark.integration


def test_response_includes_correlation_id_header():
    client = TestClient(app)

    response = client.get("/api/health")

    uuid.UUID(response.headers["x-request-id"])


def test_custom_correlation_id_echoed():
    client = TestClient(app)
    response = client.get("/api/health", headers={"X-Request-ID": "custom-id-123"})
    assert response.headers["x-request-id"] == "custom-id-123"


def test_different_requests_get_different_ids():
    client = TestClient(app)
    first = client.get("/api/health").headers["x-request-id"]
    second = client.get("/api/health").headers["x-request-id"]
    assert first != second


def test_error_response_includes_debug_id():
    """Unauthenticated API call: 401 with a debug_id and nothing sensitive."""
    client = TestClient(app)

    response = client.get("/api/activation/status")

    assert response.status_code == 401
    data = response.json()
    uuid.UUID(data["debug_id"])
    text = response.text.lower()
    assert "traceback" not in text
    assert "secret" not in text


def test_health_reports_service():
    client = TestClient(app)
    assert client.get("/api/health").json() == {"status": "healthy", "service": "activation-gate"}


def test_page_request_before_startup_is_unavailable():
    # Without the lifespan the gate has no service to consult
    client = TestClient(app)
    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 503
