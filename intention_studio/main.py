"""
Intention Studio Backend - Main Application Entry Point

This is the main FastAPI application that serves the Yoga Intention Studio.
It provides:
- Chat and speech HTTP routes backed by the hosted OpenAI API
- WebSocket endpoint for the continuous listening conversation loop
- The browser client page
- Health and readiness endpoints
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from loguru import logger

from intention_studio import __version__
from intention_studio.api import api_router, websocket_router
from intention_studio.config import settings
from intention_studio.prompts import get_welcome_text
from intention_studio.services.chat_service import get_chat_service
from intention_studio.services.speech_service import get_speech_service

STATIC_DIR = Path(__file__).parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: report configuration and warn when no API key is set
    - Shutdown: close upstream HTTP clients
    """
    logger.info("=" * 60)
    logger.info("Intention Studio Backend Starting...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug Mode: {settings.debug}")
    logger.info(f"  Chat: {settings.chat_model}")
    logger.info(f"  TTS: {settings.tts_model} ({settings.tts_voice})")
    logger.info(f"  STT: {settings.transcription_model}")
    logger.info("=" * 60)

    if not settings.has_api_key:
        logger.warning("⚠ OPENAI_API_KEY is not set - chat and speech requests will fail")

    logger.info(
        f"WebSocket endpoint: ws://{settings.host}:{settings.port}/ws/conversation"
    )
    logger.info(f"Health check: http://{settings.host}:{settings.port}/health")

    yield  # Application runs here

    logger.info("Intention Studio Backend Shutting Down...")
    try:
        await get_chat_service().close()
        await get_speech_service().close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    logger.info("Intention Studio Backend Stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Yoga Intention Studio",
        description="Conversational yoga intentions with text, speech input and read-back",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, tags=["api"])
    app.include_router(websocket_router, tags=["conversation"])

    return app


# Create the app instance
app = create_app()


@app.get("/", include_in_schema=False)
async def index():
    """Serve the browser client."""
    return FileResponse(STATIC_DIR / "index.html")


@app.get("/info", tags=["root"])
async def info():
    """Basic API information."""
    return {
        "name": "Yoga Intention Studio",
        "version": __version__,
        "description": get_welcome_text(),
        "models": {
            "chat": settings.chat_model,
            "tts": settings.tts_model,
            "stt": settings.transcription_model,
        },
        "endpoints": {
            "chat": "/api/chat",
            "speech": "/api/speech",
            "websocket": "/ws/conversation",
            "health": "/health",
            "ready": "/ready",
            "status": "/status",
        },
    }


@app.get("/health", tags=["monitoring"])
async def health():
    """
    Basic health check endpoint.
    Returns 200 if the server is running.
    """
    return {"status": "healthy", "version": __version__}


@app.get("/ready", tags=["monitoring"])
async def ready():
    """
    Readiness check endpoint.
    Returns 200 only if the upstream API can be reached with a key.
    """
    chat_service = get_chat_service()
    speech_service = get_speech_service()

    if not (chat_service.is_configured and speech_service.is_configured):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "not_ready",
                "services": {
                    "chat": chat_service.is_configured,
                    "speech": speech_service.is_configured,
                },
            },
        )

    return {"status": "ready"}


@app.get("/status", tags=["monitoring"])
async def status():
    """Detailed status endpoint showing service configuration."""
    return {
        "status": "running",
        "environment": settings.environment,
        "version": __version__,
        "services": {
            "chat": get_chat_service().get_info(),
            "speech": get_speech_service().get_info(),
        },
        "config": {
            "recognition_language": settings.recognition_language,
            "restart_listening_delay_ms": settings.restart_listening_delay_ms,
            "auto_submit_delay_ms": settings.auto_submit_delay_ms,
            "max_audio_bytes": settings.max_audio_bytes,
        },
    }


def configure_logging():
    """Configure loguru logging based on settings."""
    logger.remove()

    log_format = settings.log_format

    logger.add(
        sys.stderr,
        format=log_format,
        level=settings.log_level,
        colorize=True,
    )

    if settings.is_production:
        logger.add(
            "logs/intention-studio-{time:YYYY-MM-DD}.log",
            rotation="1 day",
            retention="7 days",
            level="INFO",
            format=log_format,
        )


def run():
    """Console entry point."""
    configure_logging()

    logger.info("")
    logger.info("=" * 60)
    logger.info("  Yoga Intention Studio")
    logger.info("=" * 60)
    logger.info(f"  Server: http://{settings.host}:{settings.port}")
    logger.info(f"  Environment: {settings.environment}")
    logger.info("=" * 60)
    logger.info("")

    uvicorn.run(
        "intention_studio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
