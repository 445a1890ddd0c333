"""
Configuration Loader for Emotion Fusion Service

This module loads configuration from JSON file and provides fallback defaults.
Values present in the file are merged over DEFAULT_CONFIG, so a config file
only needs the keys it overrides.
"""

import copy
import json
import os
import logging
from typing import Dict, Any

from emotion_fusion.models import (
    BlendSettings,
    EmotionalState,
    FusionSettings,
    ModalityWeights,
    MODALITIES,
)

logger = logging.getLogger(__name__)

# Default configuration (used as fallback)
DEFAULT_CONFIG = {
    "fusion_weights": {
        "text": 0.3,
        "audio": 0.35,
        "video": 0.35
    },
    "fusion_settings": {
        "conflict_threshold": 30,
        "reliability_order": ["video", "audio", "text"],
        "reliability_boost": 0.2,
        "min_confidence": 0.3,
        "default_metric_value": 50
    },
    "blending": {
        "enabled": True,
        "apply_to_readings": False,
        "clarity_ratio": 0.75,
        "engagement_ratio": 0.7,
        "stress_rising_ratio": 0.6,
        "stress_falling_ratio": 0.8,
        "max_stress_increase": 15,
        "modalities": {
            "text": {
                "input_scale": 100,
                "baseline": {"stress": 50, "clarity": 50, "engagement": 50}
            },
            "audio": {
                "input_scale": 1,
                "baseline": {"stress": 45, "clarity": 60, "engagement": 58}
            },
            "video": {
                "input_scale": 1,
                "baseline": {"stress": 55, "clarity": 54, "engagement": 58}
            }
        }
    },
    "model_timeout_seconds": 1.5,
    "model_service_urls": {
        "text": "http://localhost:8011",
        "audio": "http://localhost:8012",
        "video": "http://localhost:8013"
    },
    "activity_log": {
        "enabled": False,
        "directory": "data/activity_logs"
    }
}

# Cache for loaded config
_config_cache: Dict[str, Any] = None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load configuration from JSON file.

    Args:
        config_path: Path to config file. If None, uses EMOTION_FUSION_CONFIG or
            config.json next to this module. An explicit path bypasses the cache.

    Returns:
        Configuration dictionary. Returns default config if file not found or invalid.
    """
    global _config_cache

    # Return cached config if available
    if config_path is None and _config_cache is not None:
        return _config_cache

    use_cache = config_path is None

    # Determine config file path
    if config_path is None:
        config_path = os.getenv("EMOTION_FUSION_CONFIG")
    if config_path is None:
        module_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(module_dir, "config.json")

    try:
        if os.path.exists(config_path):
            with open(config_path, 'r', encoding='utf-8') as f:
                config = _deep_merge(DEFAULT_CONFIG, json.load(f))
            logger.info(f"Loaded configuration from {config_path}")
        else:
            logger.warning(f"Config file not found at {config_path}, using default configuration")
            config = copy.deepcopy(DEFAULT_CONFIG)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in config file {config_path}: {e}. Using default configuration.")
        config = copy.deepcopy(DEFAULT_CONFIG)
    except Exception as e:
        logger.error(f"Error loading config file {config_path}: {e}. Using default configuration.")
        config = copy.deepcopy(DEFAULT_CONFIG)

    if use_cache:
        _config_cache = config
    return config


def clear_config_cache() -> None:
    """Forget the cached configuration so the next load re-reads the file."""
    global _config_cache
    _config_cache = None


def get_modality_weights(config: Dict[str, Any] = None) -> ModalityWeights:
    """Build the default ModalityWeights from configuration."""
    config = config or load_config()
    weights = config.get("fusion_weights", {})
    return ModalityWeights(**{m: float(weights[m]) for m in MODALITIES if m in weights})


def get_fusion_settings(config: Dict[str, Any] = None) -> FusionSettings:
    """Build FusionSettings from configuration."""
    config = config or load_config()
    return FusionSettings(**config.get("fusion_settings", {}))


def get_blend_settings(config: Dict[str, Any] = None) -> Dict[str, BlendSettings]:
    """
    Build per-modality BlendSettings.

    Shared ratios come from the "blending" section; each modality may
    override any of them next to its baseline and input scale.
    """
    config = config or load_config()
    blending = config.get("blending", {})
    shared = {
        key: blending[key]
        for key in (
            "clarity_ratio",
            "engagement_ratio",
            "stress_rising_ratio",
            "stress_falling_ratio",
            "max_stress_increase",
        )
        if key in blending
    }

    settings = {}
    for modality in MODALITIES:
        modality_config = dict(blending.get("modalities", {}).get(modality, {}))
        baseline = modality_config.pop("baseline", {"stress": 50, "clarity": 50, "engagement": 50})
        settings[modality] = BlendSettings(
            baseline=EmotionalState(**baseline),
            **{**shared, **modality_config}
        )
    return settings


def is_blending_enabled(config: Dict[str, Any] = None) -> bool:
    """Whether raw predictions are blended before they are stored."""
    config = config or load_config()
    return bool(config.get("blending", {}).get("enabled", True))
