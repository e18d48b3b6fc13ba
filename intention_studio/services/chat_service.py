"""
Chat completion service backed by the hosted OpenAI API.

This service forwards a conversation to the fine-tuned yoga intentions model
and returns the assistant's reply. No conversation state is kept here: the
caller always sends the full history.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger
from openai import AsyncOpenAI

from intention_studio.config import settings


class MissingAPIKeyError(RuntimeError):
    """Raised when an upstream call is attempted without an API key."""


class ChatServiceError(RuntimeError):
    """Raised when the completion API call fails."""


@dataclass
class ChatMessage:
    """A single message sent to the completion model."""

    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatService:
    """
    Chat completion service.

    This service provides:
    - Non-streaming completions from the configured model
    - Lazy client creation so the app starts without an API key
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the chat service."""
        self._client = client

        self.model_name = settings.chat_model
        self.temperature = settings.chat_temperature
        self.max_tokens = settings.chat_max_tokens

    @property
    def is_configured(self) -> bool:
        """Check if the service can reach the completion API."""
        return self._client is not None or settings.has_api_key

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

    async def complete(self, messages: List[ChatMessage]) -> str:
        """
        Generate the assistant reply for a conversation.

        Args:
            messages: The full conversation, system prompt included

        Returns:
            The content of the first choice, or an empty string
        """
        client = self._get_client()

        logger.debug(f"Requesting completion for {len(messages)} messages")

        try:
            completion = await client.chat.completions.create(
                model=self.model_name,
                messages=[msg.to_dict() for msg in messages],
                stream=False,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error(f"Chat completion failed: {e}")
            raise ChatServiceError(str(e)) from e

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def get_info(self) -> Dict:
        """Get information about the configured model."""
        return {
            "model_name": self.model_name,
            "configured": self.is_configured,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


# Global service instance (singleton pattern)
_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Get or create the global chat service instance."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
