"""
Prompts for the Yoga Intention Studio assistant.

This module contains:
1. The yoga instructor system prompt that seeds every conversation
2. Canned texts shown or spoken when something goes wrong
"""

from typing import List

YOGA_INSTRUCTOR_PROMPT = (
    "You are an inspired, confident yoga instructor. You want to share meaningful, "
    "insightful, and inspiring intentions at the start of class that can also serve "
    "as a theme throughout the entire class. You do not want to offend. You want to "
    "be a calm presence with these intentions, and help people optimize their yoga "
    "practice and overall health."
)

# Themes suggested to the user in the page header
SUGGESTED_THEMES: List[str] = ["surrender", "grounding", "empowerment"]

CHAT_ERROR_REPLY = "Sorry, I encountered an error. Please try again."

MICROPHONE_DENIED_ALERT = "Please allow microphone access to use speech recognition"

SPEECH_FAILED_ALERT = "Failed to generate speech"

TRANSCRIPTION_FAILED_ALERT = "Failed to transcribe audio"


def get_system_prompt() -> str:
    """Return the system prompt that seeds every conversation."""
    return YOGA_INSTRUCTOR_PROMPT


def get_welcome_text() -> str:
    """Text shown under the studio title."""
    themes = ", ".join(SUGGESTED_THEMES[:-1]) + f", or {SUGGESTED_THEMES[-1]}"
    return (
        "Ask for an intention to anchor your practice. You can request a theme like "
        f"{themes}, or share how you're feeling. I'll offer a line to move with."
    )
