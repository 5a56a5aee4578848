from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient


def test_health_reports_active_connections(app):
    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "ok"
    assert payload["activeConnections"] == 0
    assert payload["setupFailures"] == 0
    assert payload["midCallFailures"] == 0
    assert datetime.fromisoformat(payload["timestamp"].replace("Z", "+00:00")).tzinfo is not None
