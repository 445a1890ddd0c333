"""
Emotion fusion package.

This package provides:
- API endpoints: /emotion/readings, /emotion/analysis, /emotion/weights, ...
- Orchestrator: Owns per-session modality readings and serializes updates
- Fusion logic: Conflict-aware weighted aggregation with confidence scoring
- Baseline blender: Per-modality temporal smoothing of raw predictions
- Validator: Repairs malformed readings
- Model clients: HTTP clients for the text/audio/video inference back-ends
"""

from . import models
from . import config_loader
from . import validator
from . import baseline_blender
from . import fusion_logic
from . import orchestrator
from . import model_clients
from . import api

__all__ = [
    'models',
    'config_loader',
    'validator',
    'baseline_blender',
    'fusion_logic',
    'orchestrator',
    'model_clients',
    'api'
]
