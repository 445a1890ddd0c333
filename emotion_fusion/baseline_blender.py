"""
Baseline Blender for Emotion Fusion Service

This module smooths per-modality readings before they enter fusion.

Each metric is blended with an anchor: the modality's previous blended value
when one exists, otherwise its static baseline. Clarity and engagement use a
fixed ratio. Stress uses an asymmetric ratio (more anchor weight when the new
value is rising than when it is falling) and is additionally capped at
previous stress + max_stress_increase per update.

Malformed raw predictions never raise: the modality's baseline is returned
instead.
"""

import logging
from typing import Any, Dict, List, Optional

from emotion_fusion.config_loader import get_blend_settings
from emotion_fusion.models import BlendSettings, EmotionalState, METRICS
from emotion_fusion.validator import clamp_metric, is_valid_number, round_half_up, validate_reading

logger = logging.getLogger(__name__)


def _to_value_list(raw: Any) -> Optional[List[Any]]:
    """Extract the three raw values in metric order, or None if the shape is wrong."""
    if raw is None or isinstance(raw, (str, bytes)):
        return None
    if isinstance(raw, dict):
        if not all(metric in raw for metric in METRICS):
            return None
        return [raw[metric] for metric in METRICS]
    # Tensors and arrays expose tolist()
    if hasattr(raw, "tolist"):
        raw = raw.tolist()
    try:
        values = list(raw)
    except TypeError:
        return None
    # Accept a single batch row, e.g. [[s, c, e]]
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = list(values[0])
    if len(values) != len(METRICS):
        return None
    return values


def normalize_prediction(raw: Any, input_scale: float) -> Optional[Dict[str, float]]:
    """
    Convert a raw model output into 0-100 percentages.

    Args:
        raw: Three values in (stress, clarity, engagement) order, or a mapping
        input_scale: Upper bound of the model's output scale (1 or 100)

    Returns:
        Dict of metric -> percentage, or None if the prediction is malformed
    """
    values = _to_value_list(raw)
    if values is None:
        logger.warning(f"Invalid prediction shape: {raw!r}")
        return None

    normalized = {}
    for metric, value in zip(METRICS, values):
        if not is_valid_number(value):
            logger.warning(f"Invalid prediction value for {metric}: {value!r}")
            return None
        value = float(value)
        if value < 0 or value > input_scale:
            logger.warning(f"Prediction value for {metric} out of range [0, {input_scale}]: {value}")
            return None
        normalized[metric] = value * 100.0 / input_scale

    return normalized


class BaselineBlender:
    """Temporal smoother that mixes fresh readings with a per-modality anchor."""

    def __init__(self, settings: Optional[Dict[str, BlendSettings]] = None):
        """
        Args:
            settings: BlendSettings per modality. Defaults to configuration.
        """
        self.settings = settings or get_blend_settings()

    def baseline(self, modality: str) -> EmotionalState:
        return self.settings[modality].baseline

    def blend_state(
        self,
        modality: str,
        state: EmotionalState,
        previous: Optional[EmotionalState] = None
    ) -> EmotionalState:
        """
        Blend an already-normalized reading against the baseline or previous value.

        Args:
            modality: Modality tag
            state: Validated reading on the 0-100 scale
            previous: Previous blended value for this modality, if any

        Returns:
            Blended, re-validated EmotionalState
        """
        settings = self.settings[modality]
        anchor = previous or settings.baseline

        # Stress: slower increase, faster decrease
        stress_ratio = settings.stress_rising_ratio if state.stress > anchor.stress else settings.stress_falling_ratio
        stress = state.stress * stress_ratio + anchor.stress * (1 - stress_ratio)

        reference_stress = previous.stress if previous is not None else settings.baseline.stress
        ceiling = reference_stress + settings.max_stress_increase
        if stress > ceiling:
            logger.debug(f"{modality} stress {stress:.1f} capped at {ceiling:.1f}")
            stress = ceiling

        clarity = state.clarity * settings.clarity_ratio + anchor.clarity * (1 - settings.clarity_ratio)
        engagement = state.engagement * settings.engagement_ratio + anchor.engagement * (1 - settings.engagement_ratio)

        blended = validate_reading(
            {
                "stress": clamp_metric(round_half_up(stress)),
                "clarity": clamp_metric(round_half_up(clarity)),
                "engagement": clamp_metric(round_half_up(engagement)),
            },
            source=modality,
        )
        logger.debug(f"{modality} blended {state.model_dump()} against {anchor.model_dump()} -> {blended.model_dump()}")
        return blended

    def blend_prediction(
        self,
        modality: str,
        raw: Any,
        previous: Optional[EmotionalState] = None,
        blend: bool = True
    ) -> EmotionalState:
        """
        Normalize and blend a raw model prediction.

        Returns the modality's static baseline if the prediction is malformed
        or carries no signal (all zeros).
        """
        settings = self.settings[modality]
        try:
            normalized = normalize_prediction(raw, settings.input_scale)
        except Exception as e:
            logger.warning(f"Failed to normalize {modality} prediction, using baseline: {e}")
            return settings.baseline

        if normalized is None:
            logger.warning(f"Malformed {modality} prediction, using baseline values")
            return settings.baseline

        if all(value == 0 for value in normalized.values()):
            logger.warning(f"All {modality} metrics are zero, using baseline values")
            return settings.baseline

        state = validate_reading(normalized, source=modality)
        if not blend:
            return state
        return self.blend_state(modality, state, previous)
