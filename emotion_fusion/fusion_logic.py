"""
Core Fusion Logic for Emotion Fusion Service

This module implements the weighted fusion algorithm that combines the
latest reading of each active modality into one emotional state.

Algorithm:
1. Collect active modalities (slots holding a reading), in slot order
2. Detect conflict: any pair disagrees on any metric by more than the threshold
3. On conflict, boost the most reliable active modality and take the boost
   evenly from the others
4. Weighted average per metric, rounded to integers
5. Confidence from modality coverage and active weight mass, floored at
   min_confidence when any modality is active
"""

import logging
import math
from typing import Dict, List, Mapping, Optional

from emotion_fusion.config_loader import load_config, get_modality_weights, get_fusion_settings
from emotion_fusion.models import EmotionalState, FusionResult, FusionSettings, ModalityWeights, METRICS, MODALITIES
from emotion_fusion.validator import clamp_metric, round_half_up

logger = logging.getLogger(__name__)

# Load configuration
_config = load_config()
FUSION_WEIGHTS = get_modality_weights(_config)
FUSION_SETTINGS = get_fusion_settings(_config)

CONFLICT_THRESHOLD = FUSION_SETTINGS.conflict_threshold
RELIABILITY_ORDER = list(FUSION_SETTINGS.reliability_order)
RELIABILITY_BOOST = FUSION_SETTINGS.reliability_boost
MIN_CONFIDENCE = FUSION_SETTINGS.min_confidence


def neutral_state(settings: Optional[FusionSettings] = None) -> EmotionalState:
    """The idle estimate reported when no modality is active."""
    value = (settings or FUSION_SETTINGS).default_metric_value
    return EmotionalState(stress=value, clarity=value, engagement=value)


def detect_conflict(states: List[EmotionalState], threshold: float = CONFLICT_THRESHOLD) -> bool:
    """
    Check whether any two readings disagree strongly.

    The comparison is strict: a difference equal to the threshold is not a conflict.
    """
    if len(states) < 2:
        return False

    for i in range(len(states) - 1):
        for j in range(i + 1, len(states)):
            for metric in METRICS:
                diff = abs(getattr(states[i], metric) - getattr(states[j], metric))
                if diff > threshold:
                    logger.debug(f"Conflict on {metric}: {diff:.1f} > {threshold}")
                    return True
    return False


def rebalance_weights(
    active_modalities: List[str],
    weights: ModalityWeights,
    conflict: bool,
    settings: Optional[FusionSettings] = None
) -> Dict[str, float]:
    """
    Compute effective weights for one fusion.

    Without conflict the base weights are returned unchanged. With conflict
    the most reliable active modality gains `reliability_boost`, and the same
    amount is subtracted, split evenly, from the other active modalities.

    Returns:
        Dictionary modality -> effective weight (all three modalities)
    """
    settings = settings or FUSION_SETTINGS
    effective = {modality: getattr(weights, modality) for modality in MODALITIES}

    if not conflict:
        return effective

    reliable_active = [m for m in settings.reliability_order if m in active_modalities]
    if not reliable_active or len(active_modalities) < 2:
        return effective

    primary = reliable_active[0]
    boost = settings.reliability_boost
    reduction = boost / (len(active_modalities) - 1)

    for modality in active_modalities:
        if modality == primary:
            effective[modality] += boost
        else:
            effective[modality] -= reduction

    logger.debug(f"Conflict rebalancing: boosted {primary} by {boost}, others reduced by {reduction:.3f}")
    return effective


def calculate_confidence(
    active_modalities: List[str],
    effective_weights: Dict[str, float],
    weights: ModalityWeights,
    settings: Optional[FusionSettings] = None
) -> float:
    """
    Confidence = max(min_confidence, (coverage + weight_fraction) / 2).

    coverage is the share of modalities that are active; weight_fraction is the
    active (effective) weight over the total configured weight.
    """
    settings = settings or FUSION_SETTINGS
    if not active_modalities:
        return 0.0

    coverage = len(active_modalities) / len(MODALITIES)

    total_configured = weights.total()
    active_weight = sum(effective_weights[m] for m in active_modalities)
    weight_fraction = active_weight / total_configured if total_configured > 0 else 0.0

    confidence = max(settings.min_confidence, (coverage + weight_fraction) / 2)
    if not math.isfinite(confidence):
        return settings.min_confidence
    return min(1.0, max(0.0, confidence))


def fuse(
    slots: Mapping[str, Optional[EmotionalState]],
    weights: Optional[ModalityWeights] = None,
    settings: Optional[FusionSettings] = None
) -> FusionResult:
    """
    Fuse the current per-modality readings into one estimate.

    Args:
        slots: modality -> validated EmotionalState, or None when absent.
            Iteration order defines the order of active_modalities.
        weights: Base weights. If None, uses config weights. Negative weights
            are a caller error and are not checked.
        settings: Tuning constants. If None, uses config settings.

    Returns:
        FusionResult. Never raises for well-formed slots.
    """
    weights = weights or FUSION_WEIGHTS
    settings = settings or FUSION_SETTINGS

    active_modalities = []
    for modality, state in slots.items():
        if state is None:
            continue
        if modality not in MODALITIES:
            logger.warning(f"Ignoring unknown modality '{modality}' in fusion input")
            continue
        active_modalities.append(modality)

    if not active_modalities:
        logger.debug("No active modalities, returning neutral state")
        return FusionResult(emotional_state=neutral_state(settings), confidence=0.0, active_modalities=[])

    states = [slots[m] for m in active_modalities]
    conflict = detect_conflict(states, settings.conflict_threshold)
    effective_weights = rebalance_weights(active_modalities, weights, conflict, settings)

    total_weight = sum(effective_weights[m] for m in active_modalities)
    safe_total_weight = total_weight if total_weight > 0 else 1.0

    fused = {}
    for metric in METRICS:
        weighted_sum = sum(getattr(slots[m], metric) * effective_weights[m] for m in active_modalities)
        value = clamp_metric(weighted_sum / safe_total_weight, settings.default_metric_value)
        fused[metric] = float(round_half_up(value))

    confidence = calculate_confidence(active_modalities, effective_weights, weights, settings)

    result = FusionResult(
        emotional_state=EmotionalState(**fused),
        confidence=confidence,
        active_modalities=active_modalities
    )

    logger.info(
        f"Fused {active_modalities} (conflict={conflict}): "
        f"stress={fused['stress']:.0f}, clarity={fused['clarity']:.0f}, "
        f"engagement={fused['engagement']:.0f}, confidence={confidence:.3f}"
    )
    return result
