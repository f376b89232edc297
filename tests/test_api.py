"""
API Tests
=========

HTTP and WebSocket endpoints against a runtime built around a fake
transport and in-memory stores.
"""

import pytest
from fastapi.testclient import TestClient

from cardio_stream.config import Settings
from cardio_stream.main import create_app
from cardio_stream.runtime import CardioRuntime


@pytest.fixture
def test_settings() -> Settings:
    return Settings.model_validate({
        "service": {"user_id": "test-user"},
        "device": {"auto_scan": False},
        "storage": {"backend": "memory"},
        "recording": {"countdown_seconds": 0, "duration_seconds": 60},
        "link": {"rescan_delay_seconds": 0.01, "backoff_schedule_seconds": [0.01]},
    })


@pytest.fixture
def runtime(test_settings, fake_transport, session_store, profile_store) -> CardioRuntime:
    return CardioRuntime(
        test_settings,
        transport=fake_transport,
        session_store=session_store,
        profile_store=profile_store,
    )


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as test_client:
        yield test_client


class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "CardioStream"
        assert body["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "link_state": "disconnected",
            "recording_state": "idle",
        }

    def test_metrics(self, client):
        body = client.get("/metrics").json()

        assert set(body) >= {"link", "ingest", "beats", "recording", "analysis", "events"}
        assert body["recording"]["state"] == "idle"


class TestAnalysisEndpoints:
    def test_nothing_available_yet(self, client):
        assert client.get("/health-metrics").status_code == 503
        assert client.get("/prediction").status_code == 503

    def test_prediction_on_demand(self, client):
        response = client.post("/prediction")

        assert response.status_code == 200
        body = response.json()
        assert body["risk_level"] in {"minimal", "low", "moderate", "high", "critical"}
        assert 0 <= body["risk_score"] <= 100

        assert client.get("/prediction").json() == body
        assert client.get("/health-metrics").status_code == 200

    def test_buffer_before_any_samples(self, client):
        assert client.get("/buffer").json() == {
            "type": "buffer_snapshot",
            "channels": [],
            "sweep_positions": [],
        }


class TestRecordingEndpoints:
    def test_start_conflict_and_stop(self, client):
        response = client.post("/recordings")
        assert response.status_code == 202
        assert response.json()["duration_seconds"] == 60

        conflict = client.post("/recordings")
        assert conflict.status_code == 409
        assert conflict.json()["state"] in {"countdown", "recording"}

        stopped = client.post("/recordings/stop")
        assert stopped.status_code == 200
        assert stopped.json()["status"] == "stopped"
        assert client.get("/ready").json()["recording_state"] == "idle"

    def test_stop_when_idle(self, client):
        response = client.post("/recordings/stop")

        assert response.status_code == 200
        assert response.json() == {"status": "stopped", "prediction": None}


class TestLinkEndpoints:
    def test_scan_and_disconnect_accepted(self, client):
        assert client.post("/link/scan").status_code == 202
        assert client.post("/link/disconnect").status_code == 202

    def test_scan_streams_connection_status(self, client):
        with client.websocket_connect("/ws/events") as websocket:
            client.post("/link/scan")

            states = []
            for _ in range(10):
                message = websocket.receive_json()
                if message["type"] == "connection_status":
                    states.append(message["state"])
                    if message["state"] == "connected":
                        break

        assert states[:3] == ["scanning", "connecting", "connected"]
