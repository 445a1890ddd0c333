"""
Model Client Layer for Emotion Fusion Service

This module provides HTTP clients for the per-modality inference back-ends
(text, audio, video). Each back-end exposes POST /analyze and returns either
an EmotionalState-shaped object or {"values": [stress, clarity, engagement]}.

Clients retry once and never raise: a failed call returns None so the
orchestrator can substitute the modality's baseline.
"""

import httpx
import logging
from typing import Any, Dict, Optional

from emotion_fusion.config_loader import load_config
from emotion_fusion.models import METRICS

logger = logging.getLogger(__name__)

# Load configuration
_config = load_config()
_model_config = _config.get("model_service_urls", {})
_timeout_config = _config.get("model_timeout_seconds", 1.5)


class BaseModelClient:
    """Base class for inference back-end clients with retry logic."""

    def __init__(
        self,
        service_url: str,
        service_name: str,
        modality: str,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize base model client.

        Args:
            service_url: Base URL of the inference service
            service_name: Name of the service (for logging)
            modality: Modality this back-end analyzes ("text", "audio", "video")
            timeout: Request timeout in seconds (defaults to config value)
            transport: Optional httpx transport (used by tests)
        """
        self.service_url = service_url.rstrip("/")
        self.service_name = service_name
        self.modality = modality
        self.timeout = timeout or _timeout_config
        self.transport = transport
        self.analyze_endpoint = f"{self.service_url}/analyze"

        logger.info(f"{service_name}Client initialized with URL: {self.service_url}")

    async def analyze(self, payload: Dict[str, Any]) -> Optional[Any]:
        """
        Ask the back-end to analyze one unit of input.

        Args:
            payload: JSON-serialisable input (text message, encoded audio/frame)

        Returns:
            EmotionalState-shaped dict or raw value list, or None on failure
        """
        result = await self._make_request(payload)
        if result is not None:
            return result

        # Retry once if first attempt failed
        logger.info(f"Retrying {self.service_name} analyze request...")
        result = await self._make_request(payload)
        if result is not None:
            return result

        logger.warning(f"{self.service_name} analysis failed after retry, returning None")
        return None

    async def _make_request(self, payload: Dict[str, Any]) -> Optional[Any]:
        """
        Make HTTP request to the inference service.

        Returns:
            Parsed reading if successful, None on failure
        """
        try:
            timeout_config = httpx.Timeout(
                connect=5.0,
                read=self.timeout,
                write=5.0,
                pool=5.0
            )

            async with httpx.AsyncClient(timeout=timeout_config, transport=self.transport) as client:
                response = await client.post(
                    self.analyze_endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json"}
                )
                response.raise_for_status()
                data = response.json()

            reading = parse_analysis_response(data)
            if reading is None:
                logger.warning(f"{self.service_name} returned unusable response: {data!r}")
            else:
                logger.debug(f"{self.service_name} returned {reading!r}")
            return reading

        except httpx.TimeoutException:
            logger.warning(f"{self.service_name} request timed out after {self.timeout}s")
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"{self.service_name} returned HTTP {e.response.status_code}: {e}")
            return None
        except Exception as e:
            logger.warning(f"{self.service_name} request failed: {e}")
            return None


def parse_analysis_response(data: Any) -> Optional[Any]:
    """
    Extract the reading from a back-end response body.

    Accepts {"stress", "clarity", "engagement"}, {"emotional_state": {...}}
    or {"values": [...]}. Values themselves are not validated here.
    """
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("emotional_state"), dict):
        return data["emotional_state"]
    if any(metric in data for metric in METRICS):
        return {metric: data.get(metric) for metric in METRICS}
    if isinstance(data.get("values"), list):
        return data["values"]
    return None


class TextAnalysisClient(BaseModelClient):
    """Client for the text (message) analysis service."""

    def __init__(self, service_url: Optional[str] = None, timeout: Optional[float] = None, transport=None):
        url = service_url or _model_config.get("text", "http://localhost:8011")
        super().__init__(url, "Text", "text", timeout, transport)


class AudioAnalysisClient(BaseModelClient):
    """Client for the audio (speech) analysis service."""

    def __init__(self, service_url: Optional[str] = None, timeout: Optional[float] = None, transport=None):
        url = service_url or _model_config.get("audio", "http://localhost:8012")
        super().__init__(url, "Audio", "audio", timeout, transport)


class VideoAnalysisClient(BaseModelClient):
    """Client for the video (frame) analysis service."""

    def __init__(self, service_url: Optional[str] = None, timeout: Optional[float] = None, transport=None):
        url = service_url or _model_config.get("video", "http://localhost:8013")
        super().__init__(url, "Video", "video", timeout, transport)


def build_clients(timeout: Optional[float] = None, transport=None) -> Dict[str, BaseModelClient]:
    """Create one client per modality, keyed by modality tag."""
    return {
        "text": TextAnalysisClient(timeout=timeout, transport=transport),
        "audio": AudioAnalysisClient(timeout=timeout, transport=transport),
        "video": VideoAnalysisClient(timeout=timeout, transport=transport),
    }
