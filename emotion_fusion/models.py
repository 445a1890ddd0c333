"""
Pydantic Models for Emotion Fusion Service

This module defines the shared value types (emotional state, weights, fusion
result), the tuning settings, and the request/response models used by the
HTTP layer.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal, Union


Modality = Literal["text", "audio", "video"]

# Canonical modality tags
MODALITIES = ("text", "audio", "video")

METRICS = ("stress", "clarity", "engagement")


class EmotionalState(BaseModel):
    """Three affect metrics, each on a 0-100 scale."""
    model_config = ConfigDict(frozen=True)

    stress: float = Field(ge=0.0, le=100.0)
    clarity: float = Field(ge=0.0, le=100.0)
    engagement: float = Field(ge=0.0, le=100.0)


class ModalityWeights(BaseModel):
    """
    Relative weight per modality.

    Conceptually sums to 1.0 but this is not enforced. Negative weights are a
    caller error and are not validated here.
    """
    text: float = 0.3
    audio: float = 0.35
    video: float = 0.35

    def total(self) -> float:
        return self.text + self.audio + self.video

    def merged(self, partial: Dict[str, float]) -> "ModalityWeights":
        """Return a copy with the given modality weights replaced."""
        data = self.model_dump()
        data.update({k: float(v) for k, v in partial.items() if k in MODALITIES})
        return ModalityWeights(**data)


class FusionResult(BaseModel):
    """Consolidated estimate produced by one fusion call."""
    model_config = ConfigDict(frozen=True)

    emotional_state: EmotionalState
    confidence: float = Field(ge=0.0, le=1.0, description="Trust in the fused estimate")
    active_modalities: List[str] = Field(default_factory=list, description="Modalities that contributed, in discovery order")


class FusionSettings(BaseModel):
    """Named tuning constants for the fusion engine."""
    conflict_threshold: float = 30.0
    reliability_order: List[str] = Field(default_factory=lambda: ["video", "audio", "text"])
    reliability_boost: float = 0.2
    min_confidence: float = 0.3
    default_metric_value: float = 50.0


class BlendSettings(BaseModel):
    """Per-modality smoothing configuration for the baseline blender."""
    baseline: EmotionalState
    input_scale: float = 1.0  # 1.0 for sigmoid outputs, 100.0 for percentages
    clarity_ratio: float = 0.75  # share of the fresh value
    engagement_ratio: float = 0.7
    stress_rising_ratio: float = 0.6
    stress_falling_ratio: float = 0.8
    max_stress_increase: float = 15.0


# =============================================================================
# HTTP request/response models
# =============================================================================

class ReadingRequest(BaseModel):
    """
    Reading reported by an inference back-end.

    Values are untrusted and are repaired by the validator, so any JSON value
    is accepted here.
    """
    stress: Any = None
    clarity: Any = None
    engagement: Any = None
    blend: Optional[bool] = Field(default=None, description="Override blending for this reading")


class PredictionRequest(BaseModel):
    """Raw model output (three values or a stress/clarity/engagement mapping)."""
    values: Union[List[Any], Dict[str, Any], None] = None


class AnalyzeRequest(BaseModel):
    """Input forwarded to a modality's inference back-end."""
    payload: Dict[str, Any] = Field(default_factory=dict)


class WeightsUpdateRequest(BaseModel):
    """Partial weights update. Omitted modalities keep their weight."""
    text: Optional[float] = None
    audio: Optional[float] = None
    video: Optional[float] = None


class ModeRequest(BaseModel):
    """Conversation mode switch."""
    mode: str


class StatusResponse(BaseModel):
    """Simple acknowledgement."""
    status: str = "ok"
    detail: Optional[str] = None
