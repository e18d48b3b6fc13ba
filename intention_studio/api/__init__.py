"""
API module for the Intention Studio backend.

This module contains the API endpoints:
- HTTP routes for chat completions and speech
- WebSocket endpoint for the voice conversation loop
"""

from .routes import router as api_router
from .websocket import router as websocket_router

__all__ = [
    "api_router",
    "websocket_router",
]
