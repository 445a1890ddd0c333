"""
Unit Tests: Inference Back-end Clients

Back-end HTTP calls are served by httpx.MockTransport, so no service needs to
be running.

Run with: pytest testing/test_model_clients.py -v
"""

import asyncio
import json
import os
import sys

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from emotion_fusion.model_clients import (
    AudioAnalysisClient,
    TextAnalysisClient,
    VideoAnalysisClient,
    build_clients,
    parse_analysis_response,
)
from emotion_fusion.models import EmotionalState, ModalityWeights
from emotion_fusion.orchestrator import SessionOrchestrator


class RecordingHandler:
    """Mock back-end that replays a list of responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return httpx.Response(response)
        if isinstance(response, str):
            return httpx.Response(200, text=response)
        return httpx.Response(200, json=response)


def run(coro):
    return asyncio.run(coro)


class TestAnalyze:

    def test_reading_response(self):
        handler = RecordingHandler({"stress": 30, "clarity": 60, "engagement": 70})
        client = TextAnalysisClient("http://text-service", transport=httpx.MockTransport(handler))

        result = run(client.analyze({"text": "I am fine"}))

        assert result == {"stress": 30, "clarity": 60, "engagement": 70}
        assert len(handler.requests) == 1
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://text-service/analyze"
        assert json.loads(request.content) == {"text": "I am fine"}

    def test_nested_emotional_state_response(self):
        handler = RecordingHandler({"emotional_state": {"stress": 1, "clarity": 2, "engagement": 3}, "model": "x"})
        client = VideoAnalysisClient("http://video-service/", transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) == {"stress": 1, "clarity": 2, "engagement": 3}
        assert str(handler.requests[0].url) == "http://video-service/analyze"

    def test_raw_values_response(self):
        handler = RecordingHandler({"values": [0.2, 0.5, 0.9]})
        client = AudioAnalysisClient("http://audio-service", transport=httpx.MockTransport(handler))

        assert run(client.analyze({"audio": "AAAA"})) == [0.2, 0.5, 0.9]

    def test_retries_once_then_gives_up(self):
        handler = RecordingHandler(500)
        client = AudioAnalysisClient("http://audio-service", transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) is None
        assert len(handler.requests) == 2

    def test_retry_succeeds_after_failure(self):
        handler = RecordingHandler(
            503,
            {"stress": 10, "clarity": 20, "engagement": 30},
        )
        client = TextAnalysisClient("http://text-service", transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) == {"stress": 10, "clarity": 20, "engagement": 30}
        assert len(handler.requests) == 2

    def test_timeout_returns_none(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = VideoAnalysisClient("http://video-service", timeout=0.1, transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) is None

    def test_unusable_body_returns_none(self):
        handler = RecordingHandler({"label": "happy"})
        client = TextAnalysisClient("http://text-service", transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) is None
        assert len(handler.requests) == 2

    def test_non_json_body_returns_none(self):
        handler = RecordingHandler("not json")
        client = TextAnalysisClient("http://text-service", transport=httpx.MockTransport(handler))

        assert run(client.analyze({})) is None


class TestParseAnalysisResponse:

    @pytest.mark.parametrize("body", [None, [], "text", 42, {}, {"values": "1,2,3"}])
    def test_unusable_bodies(self, body):
        assert parse_analysis_response(body) is None

    def test_partial_reading_keeps_missing_fields_as_none(self):
        assert parse_analysis_response({"stress": 40}) == {"stress": 40, "clarity": None, "engagement": None}


def test_build_clients_covers_every_modality():
    clients = build_clients(timeout=2.0)

    assert set(clients) == {"text", "audio", "video"}
    assert clients["audio"].modality == "audio"
    assert clients["video"].timeout == 2.0


class TestOrchestratorIntegration:

    def test_failing_backend_records_baseline(self):
        handler = RecordingHandler(500)
        client = TextAnalysisClient("http://text-service", transport=httpx.MockTransport(handler))
        orchestrator = SessionOrchestrator(weights=ModalityWeights(), session_id="clients")

        result = run(orchestrator.analyze_and_record("text", client.analyze, {"text": "hi"}))

        assert result.emotional_state == EmotionalState(stress=50, clarity=50, engagement=50)
        assert result.active_modalities == ["text"]

    def test_backend_values_are_blended(self):
        handler = RecordingHandler({"values": [0.65, 0.6, 0.58]})
        client = AudioAnalysisClient("http://audio-service", transport=httpx.MockTransport(handler))
        orchestrator = SessionOrchestrator(weights=ModalityWeights(), session_id="clients")

        result = run(orchestrator.analyze_and_record("audio", client.analyze, {"audio": "AAAA"}))

        assert result.emotional_state == EmotionalState(stress=57, clarity=60, engagement=58)
