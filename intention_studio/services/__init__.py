"""
Services module for the Intention Studio backend.

This module provides:
- ChatService: completions from the fine-tuned yoga intentions model
- SpeechService: text-to-speech and transcription
- ConversationSession: per-client orchestration of listening, chat and playback
"""

from .chat_service import ChatService
from .conversation_service import ConversationSession
from .speech_service import SpeechService

__all__ = [
    "ChatService",
    "SpeechService",
    "ConversationSession",
]
