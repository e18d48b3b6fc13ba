"""
Yoga Intention Studio Backend

A conversational backend for yoga class intentions featuring:
- Chat completions from a fine-tuned hosted model
- Text-to-speech playback of assistant replies
- Push-to-talk transcription
- Continuous listening orchestration over WebSocket
"""

__version__ = "0.1.0"
__app_name__ = "intention-studio"
