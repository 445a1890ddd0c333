"""
Tests for the Emotion Fusion API

Uses FastAPI's TestClient; entering the client as a context manager runs the
application lifespan, which constructs the session orchestrator.

Run with: pytest testing/test_api.py -v
"""

import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import create_app
from emotion_fusion.model_clients import build_clients


def backend_handler(request: httpx.Request) -> httpx.Response:
    """Mock inference services: audio returns raw values, video is down."""
    if request.url.host == "localhost" and request.url.port == 8012:
        return httpx.Response(200, json={"values": [0.65, 0.6, 0.58]})
    if request.url.port == 8011:
        return httpx.Response(200, json={"stress": 35, "clarity": 65, "engagement": 75})
    return httpx.Response(500)


@pytest.fixture
def client():
    app = create_app()
    with TestClient(app) as test_client:
        app.state.model_clients = build_clients(transport=httpx.MockTransport(backend_handler))
        yield test_client


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Emotion Fusion API is running"}
    assert client.get("/health").json() == {"status": "healthy"}


def test_initial_analysis_is_neutral(client):
    response = client.get("/emotion/analysis")

    assert response.status_code == 200
    assert response.json() == {
        "emotional_state": {"stress": 50.0, "clarity": 50.0, "engagement": 50.0},
        "confidence": 0.0,
        "active_modalities": [],
    }


def test_conflicting_readings_scenario(client):
    client.post("/emotion/readings/text", json={"stress": 80, "clarity": 40, "engagement": 90})
    response = client.post("/emotion/readings/audio", json={"stress": 20, "clarity": 90, "engagement": 30})

    assert response.status_code == 200
    data = response.json()
    assert data["emotional_state"] == {"stress": 29.0, "clarity": 82.0, "engagement": 39.0}
    assert data["active_modalities"] == ["text", "audio"]
    assert data["confidence"] == pytest.approx(0.658, abs=0.001)


def test_invalid_values_are_repaired(client):
    response = client.post("/emotion/readings/video", json={"stress": "very", "clarity": -4, "engagement": 70})

    assert response.status_code == 200
    assert response.json()["emotional_state"] == {"stress": 50.0, "clarity": 50.0, "engagement": 70.0}


def test_oversized_integer_is_repaired(client):
    response = client.post("/emotion/readings/text", json={"stress": 10 ** 400, "clarity": 40, "engagement": 60})

    assert response.status_code == 200
    assert response.json()["emotional_state"] == {"stress": 50.0, "clarity": 40.0, "engagement": 60.0}


def test_unknown_modality_is_400(client):
    response = client.post("/emotion/readings/smell", json={"stress": 10, "clarity": 10, "engagement": 10})

    assert response.status_code == 400
    assert "smell" in response.json()["detail"]


def test_prediction_endpoint_blends(client):
    response = client.post("/emotion/predictions/video", json={"values": [1.0, 1.0, 1.0]})

    assert response.status_code == 200
    assert response.json()["emotional_state"] == {"stress": 70.0, "clarity": 89.0, "engagement": 87.0}


def test_malformed_prediction_uses_baseline(client):
    response = client.post("/emotion/predictions/audio", json={"values": [0.1, "x"]})

    assert response.status_code == 200
    assert response.json()["emotional_state"] == {"stress": 45.0, "clarity": 60.0, "engagement": 58.0}


def test_analyze_uses_backend(client):
    response = client.post("/emotion/analyze/audio", json={"payload": {"audio": "AAAA"}})

    assert response.status_code == 200
    assert response.json()["emotional_state"] == {"stress": 57.0, "clarity": 60.0, "engagement": 58.0}


def test_analyze_failing_backend_records_baseline(client):
    response = client.post("/emotion/analyze/video", json={"payload": {"frame": "..."}})

    assert response.status_code == 200
    data = response.json()
    assert data["emotional_state"] == {"stress": 55.0, "clarity": 54.0, "engagement": 58.0}
    assert data["active_modalities"] == ["video"]


def test_clear_reading(client):
    client.post("/emotion/readings/text", json={"stress": 80, "clarity": 40, "engagement": 90})
    client.post("/emotion/readings/audio", json={"stress": 20, "clarity": 90, "engagement": 30})

    response = client.delete("/emotion/readings/audio")
    analysis = client.get("/emotion/analysis").json()

    assert response.json() == {"status": "cleared", "detail": "audio"}
    assert analysis["active_modalities"] == ["text"]
    assert analysis["emotional_state"] == {"stress": 80.0, "clarity": 40.0, "engagement": 90.0}


def test_update_weights(client):
    client.post("/emotion/readings/text", json={"stress": 20, "clarity": 20, "engagement": 20})
    client.post("/emotion/readings/video", json={"stress": 40, "clarity": 40, "engagement": 40})

    response = client.patch("/emotion/weights", json={"video": 0.45})

    assert response.status_code == 200
    assert response.json() == {"text": 0.3, "audio": 0.35, "video": 0.45}
    assert client.get("/emotion/analysis").json()["emotional_state"]["stress"] == 32.0


def test_mode_switch_and_reset(client):
    client.post("/emotion/mode", json={"mode": "text"})
    client.post("/emotion/readings/text", json={"stress": 10, "clarity": 10, "engagement": 10})
    client.post("/emotion/readings/video", json={"stress": 20, "clarity": 20, "engagement": 20})

    client.post("/emotion/mode", json={"mode": "audio"})
    assert client.get("/emotion/analysis").json()["active_modalities"] == ["video"]

    assert client.post("/emotion/mode", json={"mode": "smell"}).status_code == 400

    assert client.post("/emotion/reset").json() == {"status": "reset", "detail": None}
    assert client.get("/emotion/analysis").json()["active_modalities"] == []


def test_fusion_health(client):
    client.post("/emotion/readings/text", json={"stress": 10, "clarity": 10, "engagement": 10})

    data = client.get("/emotion/health").json()

    assert data["status"] == "healthy"
    assert data["service"] == "fusion"
    assert data["active_modalities"] == ["text"]


def test_requests_before_startup_return_503():
    client = TestClient(create_app())

    response = client.get("/emotion/analysis")

    assert response.status_code == 503
