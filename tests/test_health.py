"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 with status, version and per-store components when both stores answer
  - 503 "degraded" when a store is down, with the same body shape
  - No authentication required
"""

from __future__ import annotations

from unittest.mock import patch

from core.errors import StoreUnavailableError


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"] == {"app": "ok", "database": "ok", "code_store": "ok"}


def test_health_reports_database_outage(api_client):
    client, service = api_client
    with patch.object(service.accounts, "ping", side_effect=StoreUnavailableError()):
        resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "unavailable"
    assert data["components"]["code_store"] == "ok"


def test_health_reports_code_store_outage(api_client):
    client, service = api_client
    with patch.object(service.codes, "ping", side_effect=StoreUnavailableError()):
        resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    assert resp.json()["components"]["code_store"] == "unavailable"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
