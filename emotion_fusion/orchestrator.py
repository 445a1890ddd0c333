"""
Orchestrator Layer for Emotion Fusion Service

This module owns the per-session modality state and coordinates the flow:
1. Validate the incoming reading (or normalize a raw prediction)
2. Optionally blend it against the modality's baseline / previous value
3. Store it as the modality's current reading
4. Run fusion over a snapshot of all slots
5. Log activity and return the FusionResult

All mutable state (slot table, generation counters, weights, mode) is guarded
by a single lock. Fusion runs on a copied snapshot outside the lock.
"""

import inspect
import logging
import threading
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

from emotion_fusion.baseline_blender import BaselineBlender
from emotion_fusion.config_loader import load_config, get_modality_weights, get_fusion_settings, is_blending_enabled
from emotion_fusion.fusion_logic import fuse
from emotion_fusion.model_clients import parse_analysis_response
from emotion_fusion.models import EmotionalState, FusionResult, FusionSettings, ModalityWeights, MODALITIES, METRICS
from emotion_fusion.validator import validate_reading
from utils import activity_logger

logger = logging.getLogger(__name__)

# Load configuration
_config = load_config()
_blending_config = _config.get("blending", {})


class UnknownModalityError(ValueError):
    """Raised when a caller names a modality other than text, audio or video."""


class OrchestratorNotInitializedError(RuntimeError):
    """Raised when the session orchestrator is used before it was constructed."""


def check_modality(modality: str) -> str:
    """
    Validate a modality tag.

    Raises:
        UnknownModalityError: If the tag is not one of MODALITIES
    """
    if modality not in MODALITIES:
        raise UnknownModalityError(f"Unknown modality: '{modality}'. Must be one of {list(MODALITIES)}.")
    return modality


class SessionOrchestrator:
    """Single owner of one session's modality slots and weights."""

    def __init__(
        self,
        weights: Optional[ModalityWeights] = None,
        settings: Optional[FusionSettings] = None,
        blender: Optional[BaselineBlender] = None,
        blend_readings: Optional[bool] = None,
        blend_predictions: Optional[bool] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize a session.

        Args:
            weights: Base modality weights (defaults to config)
            settings: Fusion tuning constants (defaults to config)
            blender: Baseline blender (defaults to one built from config)
            blend_readings: Blend direct readings by default (config "blending.apply_to_readings")
            blend_predictions: Blend raw predictions (config "blending.enabled")
            session_id: Label used in logs and activity records
        """
        self._lock = threading.Lock()
        # Insertion order of this dict is the discovery order of modalities
        self._slots: Dict[str, EmotionalState] = {}
        self._generations: Dict[str, int] = {modality: 0 for modality in MODALITIES}
        self._weights = (weights or get_modality_weights(_config)).model_copy()
        self._mode: Optional[str] = None

        self.settings = settings or get_fusion_settings(_config)
        self.blender = blender or BaselineBlender()
        self.blend_readings = bool(_blending_config.get("apply_to_readings", False)) if blend_readings is None else blend_readings
        self.blend_predictions = is_blending_enabled(_config) if blend_predictions is None else blend_predictions
        self.session_id = session_id or "default"

        logger.info(f"SessionOrchestrator initialized for session '{self.session_id}' with weights {self._weights.model_dump()}")

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def weights(self) -> ModalityWeights:
        with self._lock:
            return self._weights.model_copy()

    @property
    def mode(self) -> Optional[str]:
        return self._mode

    def snapshot(self) -> Dict[str, EmotionalState]:
        """Copy of the present slots, in discovery order."""
        with self._lock:
            return dict(self._slots)

    def generation(self, modality: str) -> int:
        """
        Current generation of a modality's slot.

        Capture this before starting an inference call and pass it back to
        record_reading/record_prediction; if the slot was cleared meanwhile the
        late result is discarded.
        """
        check_modality(modality)
        with self._lock:
            return self._generations[modality]

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def _store(
        self,
        modality: str,
        compute: Callable[[Optional[EmotionalState]], EmotionalState],
        generation: Optional[int],
        operation: str
    ) -> FusionResult:
        start_time = datetime.now()
        discarded = False

        try:
            with self._lock:
                if generation is not None and generation != self._generations[modality]:
                    discarded = True
                else:
                    self._slots[modality] = compute(self._slots.get(modality))
                snapshot = dict(self._slots)
                weights = self._weights.model_copy()
        except Exception as e:
            logger.error(f"Error recording {modality} for session '{self.session_id}': {e}", exc_info=True)
            activity_logger.log_fusion_activity(
                session_id=self.session_id,
                timestamp=start_time,
                status="error",
                operation=operation,
                modality=modality,
                error=f"Exception: {str(e)}",
                duration_seconds=(datetime.now() - start_time).total_seconds()
            )
            raise

        if discarded:
            logger.info(f"Discarding late {modality} result (generation {generation} is stale)")

        result = fuse(snapshot, weights, self.settings)

        activity_logger.log_fusion_activity(
            session_id=self.session_id,
            timestamp=start_time,
            status="discarded" if discarded else "success",
            operation=operation,
            modality=modality,
            emotional_state=result.emotional_state.model_dump(),
            confidence=result.confidence,
            active_modalities=result.active_modalities,
            duration_seconds=(datetime.now() - start_time).total_seconds()
        )
        return result

    def record_reading(
        self,
        modality: str,
        reading: Any,
        blend: Optional[bool] = None,
        generation: Optional[int] = None
    ) -> FusionResult:
        """
        Record a modality's reading and return the new fused estimate.

        Args:
            modality: "text" | "audio" | "video"
            reading: Untrusted EmotionalState-shaped value (0-100 scale)
            blend: Blend against baseline/previous value (defaults to blend_readings)
            generation: Generation captured when the analysis started (optional)

        Returns:
            FusionResult over all present slots

        Raises:
            UnknownModalityError: If modality is not recognised
        """
        check_modality(modality)
        state = validate_reading(reading, source=modality)
        should_blend = self.blend_readings if blend is None else blend

        def compute(previous: Optional[EmotionalState]) -> EmotionalState:
            if should_blend:
                return self.blender.blend_state(modality, state, previous)
            return state

        logger.debug(f"Recording {modality} reading {state.model_dump()} (blend={should_blend})")
        return self._store(modality, compute, generation, "record_reading")

    def record_prediction(self, modality: str, raw_prediction: Any, generation: Optional[int] = None) -> FusionResult:
        """
        Record a raw model prediction for a modality.

        The prediction is normalized to 0-100 using the modality's input scale
        and blended; malformed predictions are replaced by the baseline.
        """
        check_modality(modality)

        def compute(previous: Optional[EmotionalState]) -> EmotionalState:
            return self.blender.blend_prediction(modality, raw_prediction, previous, blend=self.blend_predictions)

        return self._store(modality, compute, generation, "record_prediction")

    async def analyze_and_record(
        self,
        modality: str,
        analyze: Callable[[Any], Union[Awaitable[Any], Any]],
        payload: Any
    ) -> FusionResult:
        """
        Run a modality's inference back-end and record its result.

        Any exception or unusable output from the back-end is absorbed here and
        the modality's baseline is recorded instead, so one failing modality
        never breaks fusion for the others. If the modality is cleared while
        the call is in flight the result is discarded.

        Args:
            modality: "text" | "audio" | "video"
            analyze: Back-end call (sync or async) returning an
                EmotionalState-shaped mapping, {"emotional_state": {...}},
                {"values": [...]} or a raw 3-value prediction
            payload: Input passed to the back-end

        Returns:
            FusionResult after recording (or the current analysis if discarded)
        """
        generation = self.generation(modality)

        try:
            output = analyze(payload)
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            logger.warning(f"{modality} back-end raised exception, using baseline: {e}")
            output = None

        # Same response shapes as the HTTP clients accept
        if isinstance(output, dict):
            output = parse_analysis_response(output)

        if output is None:
            logger.warning(f"{modality} back-end returned no usable data, using baseline values")
            return self.record_reading(modality, self.blender.baseline(modality), blend=False, generation=generation)

        if _is_reading(output):
            return self.record_reading(modality, output, generation=generation)
        return self.record_prediction(modality, output, generation=generation)

    def clear_modality(self, modality: str) -> None:
        """Remove a modality's reading. Late results for it are discarded."""
        check_modality(modality)
        with self._lock:
            removed = self._slots.pop(modality, None)
            self._generations[modality] += 1
        if removed is not None:
            logger.info(f"Cleared {modality} reading for session '{self.session_id}'")

    def current_analysis(self) -> FusionResult:
        """Fuse the current slots without modifying anything."""
        with self._lock:
            snapshot = dict(self._slots)
            weights = self._weights.model_copy()
        return fuse(snapshot, weights, self.settings)

    def update_weights(self, partial: Union[Dict[str, float], BaseModel]) -> ModalityWeights:
        """
        Merge new weights into the stored weights. Affects future fusions only.

        Args:
            partial: Mapping (or pydantic model) of modality -> weight; None
                values and unknown keys are ignored

        Returns:
            The merged weights
        """
        if isinstance(partial, BaseModel):
            partial = partial.model_dump(exclude_none=True)

        updates = {}
        for key, value in partial.items():
            if value is None:
                continue
            if key not in MODALITIES:
                logger.warning(f"Ignoring weight for unknown modality '{key}'")
                continue
            updates[key] = value

        with self._lock:
            self._weights = self._weights.merged(updates)
            merged = self._weights.model_copy()

        logger.info(f"Updated modality weights: {merged.model_dump()}")
        return merged

    def switch_mode(self, mode: str) -> None:
        """
        Switch the active conversation mode.

        Leaving a mode clears that mode's reading so stale analysis cannot
        masquerade as current.
        """
        check_modality(mode)
        with self._lock:
            previous_mode = self._mode
            if previous_mode is not None and previous_mode != mode:
                self._slots.pop(previous_mode, None)
                self._generations[previous_mode] += 1
            self._mode = mode
        if previous_mode != mode:
            logger.info(f"Conversation mode switched from {previous_mode} to {mode}")

    def reset(self) -> None:
        """Clear every modality (session reset). Weights are kept."""
        with self._lock:
            self._slots.clear()
            for modality in MODALITIES:
                self._generations[modality] += 1
            self._mode = None
        logger.info(f"Session '{self.session_id}' reset")


def _is_reading(output: Any) -> bool:
    """EmotionalState-shaped output; anything else is handled as a raw prediction."""
    if isinstance(output, EmotionalState):
        return True
    return isinstance(output, dict) and any(metric in output for metric in METRICS)


def require_orchestrator(orchestrator: Optional[SessionOrchestrator]) -> SessionOrchestrator:
    """
    Guard against using the session before it was constructed.

    Raises:
        OrchestratorNotInitializedError: If orchestrator is None
    """
    if orchestrator is None:
        raise OrchestratorNotInitializedError("Session orchestrator has not been initialized")
    return orchestrator
