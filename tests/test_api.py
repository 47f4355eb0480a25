"""
API Tests
=========

HTTP and WebSocket endpoints over the mock backend.
"""

import json

import pytest
from fastapi.testclient import TestClient

from roadwatch.config import settings
from roadwatch.main import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings.datasource, "backend", "mock")
    monkeypatch.setattr(settings.datasource.mock, "chunk_delay_seconds", 0.0)
    monkeypatch.setattr(settings.datasource.mock, "latency_seconds", 0.0)
    monkeypatch.setattr(settings.server, "overlay_push_seconds", 0.05)
    monkeypatch.setattr(settings.view, "rotation_enabled", False)
    monkeypatch.setattr(settings.view, "initial_preset", "overall")
    monkeypatch.setattr(settings, "random_seed", 7)

    with TestClient(app) as test_client:
        yield test_client


QUERY = {
    "origin": "Taiyuan Railway Station",
    "destination": "Wuyi Square",
    "distance": "6.2 km",
    "duration": "25 min",
    "congestion_level": "MEDIUM",
}


class TestProbes:
    """Service info, liveness, readiness."""

    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "Roadwatch"
        assert data["data_backend"] == "mock"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_ready_after_initial_load(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["tick_count"] == 1

    def test_metrics(self, client):
        data = client.get("/metrics").json()
        assert data["refresh"]["tick_count"] == 1
        assert data["store"]["roads"] == 4
        assert data["animation"]["vehicles"] == 12
        assert data["overlays"]["attached"] == 23


class TestState:
    """Snapshot, overlays, refresh, viewport."""

    def test_snapshot(self, client):
        data = client.get("/snapshot").json()
        assert [r["name"] for r in data["roads"]][:2] == ["Yingze Street", "South Inner Ring Street"]
        assert len(data["vehicles"]) == 12

    def test_overlays(self, client):
        data = client.get("/overlays").json()
        assert len(data["overlays"]) == 23
        assert data["viewport"]["zoom"] == 12

    def test_manual_refresh(self, client):
        data = client.post("/refresh").json()
        assert data["refreshed"] is True
        assert data["tick_count"] == 2
        assert data["countdown"] == settings.refresh.interval_seconds

    def test_viewport_preset(self, client):
        data = client.put("/viewport/downtown").json()
        assert data["zoom"] == 14
        assert client.get("/overlays").json()["viewport"]["zoom"] == 14

    def test_unknown_viewport_preset(self, client):
        assert client.put("/viewport/moon").status_code == 404


class TestRecommendations:
    """Recommendation endpoints."""

    def test_final_recommendation(self, client):
        data = client.post("/recommendations", json=QUERY).json()
        assert data["source"] == "STREAM_FINAL"
        assert set(data["recommendation"]) == {
            "alternateRoute",
            "bestTimeToTravel",
            "transportationTip",
            "safetyTip",
        }

    def test_stream_ends_with_final(self, client):
        response = client.post("/recommendations/stream", json=QUERY)
        lines = [json.loads(line) for line in response.text.splitlines() if line]

        assert response.headers["content-type"].startswith("application/x-ndjson")
        assert lines[-1]["type"] == "final"
        assert lines[-1]["source"] == "STREAM_FINAL"
        assert all(line["type"] == "partial" for line in lines[:-1])

    def test_invalid_query(self, client):
        assert client.post("/recommendations", json={"origin": ""}).status_code == 422


class TestWebSocket:
    """Overlay push."""

    def test_overlay_push(self, client):
        with client.websocket_connect("/ws/overlays") as websocket:
            first = websocket.receive_json()
            second = websocket.receive_json()

        assert len(first["overlays"]) == 23
        assert second["viewport"]["zoom"] == 12
