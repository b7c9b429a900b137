"""
Tests for /health and /ready endpoints.
"""
from __future__ import annotations

from unittest.mock import patch


def test_ready_ok(app_client):
    """Test /ready returns ok when the database and upload directory are usable."""
    _app, client = app_client

    res = client.get("/ready")
    assert res.status_code == 200

    body = res.get_json()
    assert body["status"] == "ok"
    assert body["checks"] == {"db": "ok", "storage": "ok"}


def test_ready_db_down(app_client):
    """Test /ready returns degraded when the database is unreachable."""
    _app, client = app_client

    with patch("app.routes.core.ping_db", return_value=False):
        res = client.get("/ready")
        assert res.status_code == 503
        body = res.get_json()
        assert body["status"] == "degraded"
        assert body["checks"]["db"] == "error"


def test_health_and_version(app_client):
    _app, client = app_client

    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"
    assert "cache" in res.get_json()

    res = client.get("/version")
    assert res.get_json()["env"] == "test"
    assert res.headers.get("X-Request-ID")
