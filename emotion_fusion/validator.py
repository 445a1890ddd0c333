"""
Modality Reading Validator

Repairs untrusted readings into a valid EmotionalState. Validation is
per field and never raises: a bad field is replaced with the default value,
the other fields are kept.
"""

import logging
import math
from numbers import Real
from typing import Any, Optional

from emotion_fusion.models import EmotionalState, METRICS

logger = logging.getLogger(__name__)

DEFAULT_METRIC_VALUE = 50.0
METRIC_MIN = 0.0
METRIC_MAX = 100.0


def is_valid_number(value: Any) -> bool:
    """True if value is a real number (not bool) that converts to a finite float."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    try:
        value = float(value)
    except (OverflowError, TypeError, ValueError):
        # e.g. integers too large for a float
        return False
    return math.isfinite(value)


def is_valid_metric(value: Any) -> bool:
    """True if value is a finite real number within [0, 100]."""
    return is_valid_number(value) and METRIC_MIN <= float(value) <= METRIC_MAX


def clamp_metric(value: float, default: float = DEFAULT_METRIC_VALUE) -> float:
    """Clamp a computed metric into [0, 100]; non-finite values become the default."""
    try:
        value = float(value)
    except (OverflowError, TypeError, ValueError):
        return default
    if not math.isfinite(value):
        return default
    return max(METRIC_MIN, min(METRIC_MAX, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _read_field(reading: Any, name: str) -> Any:
    if isinstance(reading, dict):
        return reading.get(name)
    return getattr(reading, name, None)


def validate_reading(reading: Any, default: float = DEFAULT_METRIC_VALUE, source: Optional[str] = None) -> EmotionalState:
    """
    Produce a guaranteed-valid EmotionalState from an arbitrary candidate.

    Args:
        reading: Mapping, object with stress/clarity/engagement attributes,
            EmotionalState, or anything else (None, junk)
        default: Replacement for any invalid field
        source: Optional label for log messages (e.g. the modality)

    Returns:
        EmotionalState where every field is finite and in [0, 100]
    """
    if isinstance(reading, EmotionalState):
        return reading

    values = {}
    for metric in METRICS:
        value = _read_field(reading, metric)
        if is_valid_metric(value):
            values[metric] = float(value)
        else:
            logger.warning(f"Invalid {metric} value {value!r}{f' from {source}' if source else ''}, using default {default}")
            values[metric] = default

    return EmotionalState(**values)
