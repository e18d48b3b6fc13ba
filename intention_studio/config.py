"""
Configuration module for the Intention Studio backend.
Uses pydantic-settings for environment variable management.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ===========================================
    # Server Configuration
    # ===========================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # ===========================================
    # OpenAI Configuration
    # ===========================================
    openai_api_key: Optional[str] = Field(
        default=None, description="API key for the hosted completion and speech APIs"
    )
    openai_base_url: Optional[str] = Field(
        default=None, description="Override for the OpenAI API base URL"
    )
    openai_timeout_s: float = Field(
        default=30.0, description="Timeout for upstream API calls in seconds"
    )

    # ===========================================
    # Chat Completion Configuration
    # ===========================================
    chat_model: str = Field(
        default="ft:gpt-4.1-nano-2025-04-14:kirk-williams:yoga-intentions-ai:Cl57h57Y",
        description="Fine-tuned chat completion model",
    )
    chat_temperature: float = Field(
        default=0.7, description="Sampling temperature for completions"
    )
    chat_max_tokens: int = Field(
        default=128, description="Maximum tokens generated per reply"
    )

    # ===========================================
    # Speech Configuration
    # ===========================================
    tts_model: str = Field(default="tts-1", description="Text-to-speech model")
    tts_voice: str = Field(default="nova", description="Text-to-speech voice")
    tts_format: str = Field(
        default="mp3", description="Audio format returned by text-to-speech"
    )
    transcription_model: str = Field(
        default="whisper-1", description="Speech-to-text model for push-to-talk audio"
    )
    max_audio_bytes: int = Field(
        default=25 * 1024 * 1024,
        description="Largest accepted upload for transcription (25MB API limit)",
    )
    recognition_language: str = Field(
        default="en-US", description="Language for browser speech recognition"
    )

    # ===========================================
    # Conversation Timing
    # ===========================================
    restart_listening_delay_ms: int = Field(
        default=500,
        description="Delay before recognition restarts in continuous mode",
    )
    auto_submit_delay_ms: int = Field(
        default=500,
        description="Delay between a final transcript and its auto-submission",
    )
    resume_after_error_delay_ms: int = Field(
        default=100,
        description="Delay before recognition resumes after a playback failure",
    )

    # ===========================================
    # CORS Configuration
    # ===========================================
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins",
    )

    # ===========================================
    # Logging
    # ===========================================
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Loguru log format",
    )

    # ===========================================
    # Computed Properties
    # ===========================================
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Global settings instance for convenience
settings = get_settings()
