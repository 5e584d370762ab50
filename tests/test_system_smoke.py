from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gym_access.main import app


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


def test_health_and_auth_smoke(client: TestClient) -> None:
    # health open
    hr = client.get("/health")
    assert hr.status_code == 200
    assert hr.json() == {"ok": True}
    assert "X-Process-Time-Ms" in hr.headers
    assert hr.headers["X-Request-Id"]

    echoed = client.get("/health", headers={"X-Request-Id": "door-7-0001"})
    assert echoed.headers["X-Request-Id"] == "door-7-0001"
    # basic unauthorized check (endpoint exists, returns 401)
    r = client.get("/api/members.list")
    assert r.status_code == 401
    assert r.json()["ok"] is False


def test_every_access_route_is_registered(client: TestClient) -> None:
    paths = {route.path for route in app.routes}
    for path in [
        "/api/access.validate",
        "/api/access.checkin",
        "/api/access.logs",
        "/api/access.stats",
        "/api/qr.generate",
        "/api/qr.validate",
        "/api/qr.status",
        "/api/settings.get",
        "/api/settings.set",
        "/api/maintenance.expire_memberships",
        "/api/maintenance.sweep_qr_tokens",
    ]:
        assert path in paths
