"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' while the engine answers SELECT 1
  - 503 "degraded" when the database is unreachable
  - No authentication required
"""

from __future__ import annotations

from sqlalchemy import create_engine


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_reports_unreachable_database(api_client):
    """A database that cannot be opened turns the response into 503 'degraded'."""
    client, _ = api_client
    engine = client.app.state.engine
    client.app.state.engine = create_engine("sqlite:////nonexistent-dir/health.db")
    try:
        resp = client.get("/api/v1/health")
    finally:
        client.app.state.engine = engine
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "unavailable"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
