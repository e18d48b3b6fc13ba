"""
Prompts module for the Yoga Intention Studio.

Contains the yoga instructor system prompt and user-facing canned texts.
"""

from .intention_prompts import (
    CHAT_ERROR_REPLY,
    MICROPHONE_DENIED_ALERT,
    SPEECH_FAILED_ALERT,
    TRANSCRIPTION_FAILED_ALERT,
    YOGA_INSTRUCTOR_PROMPT,
    get_system_prompt,
    get_welcome_text,
)

__all__ = [
    "YOGA_INSTRUCTOR_PROMPT",
    "CHAT_ERROR_REPLY",
    "MICROPHONE_DENIED_ALERT",
    "SPEECH_FAILED_ALERT",
    "TRANSCRIPTION_FAILED_ALERT",
    "get_system_prompt",
    "get_welcome_text",
]
