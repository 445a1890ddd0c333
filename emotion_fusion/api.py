"""
API Layer for Emotion Fusion Service

This module provides FastAPI endpoints that expose the session orchestrator
to the interface layer.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from emotion_fusion.model_clients import BaseModelClient, build_clients
from emotion_fusion.models import (
    AnalyzeRequest,
    FusionResult,
    ModalityWeights,
    ModeRequest,
    PredictionRequest,
    ReadingRequest,
    StatusResponse,
    WeightsUpdateRequest,
)
from emotion_fusion.orchestrator import (
    OrchestratorNotInitializedError,
    SessionOrchestrator,
    check_modality,
    require_orchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/emotion", tags=["emotion"])


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Dependency: the orchestrator constructed at application startup."""
    try:
        return require_orchestrator(getattr(request.app.state, "orchestrator", None))
    except OrchestratorNotInitializedError as e:
        logger.error(f"{request.method} {request.url.path} - {e}")
        raise HTTPException(status_code=503, detail=str(e))


def get_model_clients(request: Request) -> Dict[str, BaseModelClient]:
    """Dependency: inference back-end clients (created on first use if missing)."""
    clients = getattr(request.app.state, "model_clients", None)
    if clients is None:
        clients = build_clients()
        request.app.state.model_clients = clients
    return clients


@router.post("/readings/{modality}", response_model=FusionResult)
async def record_reading(
    modality: str,
    request: ReadingRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator)
):
    """
    Record a finished reading for one modality and return the fused estimate.

    Field values are untrusted; invalid values are replaced with defaults.
    """
    logger.info(f"POST /emotion/readings/{modality} - Endpoint called")

    try:
        reading = request.model_dump(include={"stress", "clarity", "engagement"})
        return orchestrator.record_reading(modality, reading, blend=request.blend)
    except ValueError as e:
        logger.error(f"POST /emotion/readings/{modality} - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"POST /emotion/readings/{modality} - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.post("/predictions/{modality}", response_model=FusionResult)
async def record_prediction(
    modality: str,
    request: PredictionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator)
):
    """
    Record a raw model prediction (normalized and blended before storage).

    Malformed predictions fall back to the modality's baseline.
    """
    logger.info(f"POST /emotion/predictions/{modality} - Endpoint called")

    try:
        return orchestrator.record_prediction(modality, request.values)
    except ValueError as e:
        logger.error(f"POST /emotion/predictions/{modality} - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"POST /emotion/predictions/{modality} - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.post("/analyze/{modality}", response_model=FusionResult)
async def analyze(
    modality: str,
    request: AnalyzeRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    clients: Dict[str, BaseModelClient] = Depends(get_model_clients)
):
    """
    Forward input to the modality's inference back-end and record the result.

    If the back-end fails, the modality's baseline reading is recorded instead.
    """
    logger.info(f"POST /emotion/analyze/{modality} - Endpoint called")

    try:
        check_modality(modality)
        client = clients[modality]
        return await orchestrator.analyze_and_record(modality, client.analyze, request.payload)
    except ValueError as e:
        logger.error(f"POST /emotion/analyze/{modality} - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"POST /emotion/analyze/{modality} - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.delete("/readings/{modality}", response_model=StatusResponse)
async def clear_modality(modality: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Clear a modality's reading so it no longer contributes to fusion."""
    logger.info(f"DELETE /emotion/readings/{modality} - Endpoint called")

    try:
        orchestrator.clear_modality(modality)
        return StatusResponse(status="cleared", detail=modality)
    except ValueError as e:
        logger.error(f"DELETE /emotion/readings/{modality} - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/analysis", response_model=FusionResult)
async def current_analysis(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Current fused estimate. Read-only, safe to poll."""
    logger.debug("GET /emotion/analysis - Endpoint called")
    return orchestrator.current_analysis()


@router.patch("/weights", response_model=ModalityWeights)
async def update_weights(request: WeightsUpdateRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Merge new modality weights; affects future fusions only."""
    logger.info(f"PATCH /emotion/weights - Endpoint called with {request.model_dump(exclude_none=True)}")
    return orchestrator.update_weights(request)


@router.post("/mode", response_model=StatusResponse)
async def switch_mode(request: ModeRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Switch conversation mode; the reading of the mode being left is cleared."""
    logger.info(f"POST /emotion/mode - Switching to {request.mode}")

    try:
        orchestrator.switch_mode(request.mode)
        return StatusResponse(status="ok", detail=request.mode)
    except ValueError as e:
        logger.error(f"POST /emotion/mode - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/reset", response_model=StatusResponse)
async def reset(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Clear every modality reading."""
    logger.info("POST /emotion/reset - Endpoint called")
    orchestrator.reset()
    return StatusResponse(status="reset")


@router.get("/health")
async def health(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """
    Health check endpoint for fusion service.

    Returns:
        Dictionary with health status and the current active modalities
    """
    logger.info("GET /emotion/health - Health check called")
    analysis = orchestrator.current_analysis()
    return {
        "status": "healthy",
        "service": "fusion",
        "session_id": orchestrator.session_id,
        "active_modalities": analysis.active_modalities
    }
