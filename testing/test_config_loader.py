"""
Unit Tests: Configuration Loader

Run with: pytest testing/test_config_loader.py -v
"""

import json
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from emotion_fusion.config_loader import (
    DEFAULT_CONFIG,
    clear_config_cache,
    get_blend_settings,
    get_fusion_settings,
    get_modality_weights,
    is_blending_enabled,
    load_config,
)
from emotion_fusion.models import EmotionalState, ModalityWeights


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_bundled_config_matches_defaults():
    config = load_config()

    assert config["fusion_weights"] == DEFAULT_CONFIG["fusion_weights"]
    assert config["fusion_settings"]["conflict_threshold"] == 30


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.json"))

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_invalid_json_uses_defaults(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_config(str(path)) == DEFAULT_CONFIG


def test_partial_file_is_merged_over_defaults(tmp_path):
    path = write_config(tmp_path, {
        "fusion_weights": {"video": 0.5},
        "blending": {"modalities": {"audio": {"baseline": {"stress": 40, "clarity": 60, "engagement": 60}}}},
    })

    config = load_config(path)

    assert get_modality_weights(config) == ModalityWeights(text=0.3, audio=0.35, video=0.5)
    blend = get_blend_settings(config)
    assert blend["audio"].baseline == EmotionalState(stress=40, clarity=60, engagement=60)
    assert blend["audio"].input_scale == 1
    assert blend["video"].baseline == EmotionalState(stress=55, clarity=54, engagement=58)


def test_per_modality_ratio_override(tmp_path):
    path = write_config(tmp_path, {
        "blending": {"max_stress_increase": 10, "modalities": {"text": {"max_stress_increase": 5}}}
    })

    blend = get_blend_settings(load_config(path))

    assert blend["text"].max_stress_increase == 5
    assert blend["audio"].max_stress_increase == 10
    assert blend["text"].input_scale == 100


def test_fusion_settings_and_blending_switch(tmp_path):
    path = write_config(tmp_path, {
        "fusion_settings": {"conflict_threshold": 20, "reliability_order": ["audio", "video", "text"]},
        "blending": {"enabled": False},
    })
    config = load_config(path)

    settings = get_fusion_settings(config)

    assert settings.conflict_threshold == 20
    assert settings.reliability_order == ["audio", "video", "text"]
    assert settings.reliability_boost == 0.2
    assert is_blending_enabled(config) is False


def test_defaults_are_not_mutated_by_merge(tmp_path):
    path = write_config(tmp_path, {"fusion_weights": {"text": 0.9}})

    load_config(path)

    assert DEFAULT_CONFIG["fusion_weights"]["text"] == 0.3


@pytest.fixture
def fresh_cache():
    clear_config_cache()
    yield
    clear_config_cache()


def test_env_var_selects_config_file(tmp_path, monkeypatch, fresh_cache):
    path = write_config(tmp_path, {"fusion_settings": {"conflict_threshold": 25}})
    monkeypatch.setenv("EMOTION_FUSION_CONFIG", path)

    config = load_config()

    assert get_fusion_settings(config).conflict_threshold == 25
    assert load_config() is config


def test_cache_cleared_rereads_file(tmp_path, monkeypatch, fresh_cache):
    path = write_config(tmp_path, {"fusion_weights": {"text": 0.2}})
    monkeypatch.setenv("EMOTION_FUSION_CONFIG", path)
    assert load_config()["fusion_weights"]["text"] == 0.2

    write_config(tmp_path, {"fusion_weights": {"text": 0.4}})
    assert load_config()["fusion_weights"]["text"] == 0.2

    clear_config_cache()

    assert load_config()["fusion_weights"]["text"] == 0.4
