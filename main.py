"""
FastAPI Main Application

This script wires the emotion fusion routes and runs the FastAPI server on port 8000.
The session orchestrator is constructed once at startup and injected into the
routes through app.state.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI
import uvicorn
import logging

from emotion_fusion import api as fusion_api
from emotion_fusion.model_clients import build_clients
from emotion_fusion.orchestrator import SessionOrchestrator

# Load environment variables
load_dotenv()

# Setup logging with timestamps
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the session orchestrator on startup, drop it on shutdown."""
    app.state.orchestrator = SessionOrchestrator()
    app.state.model_clients = build_clients()
    logger.info(f"Emotion fusion session started at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    yield
    app.state.orchestrator = None
    app.state.model_clients = None
    logger.info("Emotion fusion session closed")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Emotion Fusion API",
        description="Cross-modal emotional state fusion for text, audio and video readings",
        version="1.0.0",
        lifespan=lifespan
    )

    @app.get("/")
    async def root():
        """Root endpoint."""
        logger.info("GET / - Root endpoint called")
        return {"message": "Emotion Fusion API is running"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        logger.info("GET /health - Health check endpoint called")
        return {"status": "healthy"}

    app.include_router(fusion_api.router)
    return app


# Create FastAPI app instance
app = create_app()


if __name__ == "__main__":
    # Run the server on port 8000
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
