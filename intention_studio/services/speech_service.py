"""
Speech service backed by the hosted OpenAI audio API.

Handles both directions:
- Text-to-speech for reading assistant replies aloud (mp3)
- Transcription of push-to-talk recordings (webm)
"""

from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger
from openai import AsyncOpenAI

from intention_studio.config import settings
from intention_studio.services.chat_service import MissingAPIKeyError

AUDIO_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
}


class SpeechServiceError(RuntimeError):
    """Raised when a speech synthesis or transcription call fails."""


@dataclass
class SynthesisResult:
    """Audio produced for a piece of text."""

    audio: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.audio)


class SpeechService:
    """
    Text-to-speech and transcription service.

    The client is created lazily so the application can start (and report
    itself as not ready) without an API key.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the speech service."""
        self._client = client

        self.tts_model = settings.tts_model
        self.voice = settings.tts_voice
        self.output_format = settings.tts_format
        self.transcription_model = settings.transcription_model

    @property
    def is_configured(self) -> bool:
        """Check if the service can reach the speech API."""
        return self._client is not None or settings.has_api_key

    @property
    def content_type(self) -> str:
        return AUDIO_CONTENT_TYPES.get(self.output_format, "application/octet-stream")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.has_api_key:
                raise MissingAPIKeyError("Server is missing API key.")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout_s,
            )
        return self._client

    async def synthesize(self, text: str) -> SynthesisResult:
        """
        Synthesize speech from text.

        Args:
            text: The text to read aloud

        Returns:
            The encoded audio and its content type

        Raises:
            SpeechServiceError: if the API fails or returns no audio
        """
        client = self._get_client()

        logger.debug(f"Synthesizing {len(text)} characters with voice {self.voice}")

        try:
            response = await client.audio.speech.create(
                model=self.tts_model,
                voice=self.voice,
                input=text,
                response_format=self.output_format,
            )
            audio = response.content
        except Exception as e:
            logger.error(f"Speech synthesis failed: {e}")
            raise SpeechServiceError(str(e)) from e

        if not audio:
            logger.error("Empty audio received from speech API")
            raise SpeechServiceError("Empty audio received from API")

        logger.debug(f"Synthesized {len(audio)} bytes of audio")
        return SynthesisResult(audio=audio, content_type=self.content_type)

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """
        Transcribe a recorded audio clip.

        Args:
            audio: Encoded audio bytes
            filename: Name used to hint the container format upstream
            content_type: MIME type of the recording

        Returns:
            The transcribed text
        """
        client = self._get_client()

        logger.debug(f"Transcribing {len(audio)} bytes ({content_type})")

        try:
            transcription = await client.audio.transcriptions.create(
                model=self.transcription_model,
                file=(filename, audio, content_type),
            )
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise SpeechServiceError(str(e)) from e

        return (transcription.text or "").strip()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def get_info(self) -> Dict:
        """Get information about the configured speech models."""
        return {
            "tts_model": self.tts_model,
            "voice": self.voice,
            "format": self.output_format,
            "transcription_model": self.transcription_model,
            "configured": self.is_configured,
        }


# Global service instance (singleton pattern)
_speech_service: Optional[SpeechService] = None


def get_speech_service() -> SpeechService:
    """Get or create the global speech service instance."""
    global _speech_service
    if _speech_service is None:
        _speech_service = SpeechService()
    return _speech_service
