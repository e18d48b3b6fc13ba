"""Tests for the OpenAI-backed chat and speech services."""

import pytest

from intention_studio.config import settings
from intention_studio.services.chat_service import (
    ChatMessage,
    ChatService,
    ChatServiceError,
    MissingAPIKeyError,
)
from intention_studio.services.speech_service import SpeechService, SpeechServiceError

from .conftest import DEFAULT_AUDIO, DEFAULT_REPLY


async def test_complete_uses_configured_model_and_sampling(chat_service, fake_openai):
    reply = await chat_service.complete(
        [ChatMessage(role="system", content="Be calm."), ChatMessage("user", "Hi")]
    )

    assert reply == DEFAULT_REPLY
    call = fake_openai.completions.calls[0]
    assert call["model"] == settings.chat_model
    assert call["stream"] is False
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 128
    assert call["messages"] == [
        {"role": "system", "content": "Be calm."},
        {"role": "user", "content": "Hi"},
    ]


async def test_complete_returns_empty_string_for_missing_content(
    chat_service, fake_openai
):
    fake_openai.completions.reply = None
    assert await chat_service.complete([ChatMessage("user", "Hi")]) == ""


async def test_complete_wraps_upstream_errors(chat_service, fake_openai):
    fake_openai.completions.error = RuntimeError("rate limited")

    with pytest.raises(ChatServiceError, match="rate limited"):
        await chat_service.complete([ChatMessage("user", "Hi")])


async def test_services_without_key_are_not_configured(no_api_key):
    chat = ChatService()
    speech = SpeechService()

    assert chat.is_configured is False
    assert speech.is_configured is False
    with pytest.raises(MissingAPIKeyError):
        await chat.complete([ChatMessage("user", "Hi")])
    with pytest.raises(MissingAPIKeyError):
        await speech.synthesize("Hi")


def test_services_with_key_are_configured(api_key):
    assert ChatService().is_configured is True
    assert SpeechService().get_info()["configured"] is True


async def test_synthesize_returns_mp3(speech_service, fake_openai):
    result = await speech_service.synthesize("Breathe in")

    assert result.audio == DEFAULT_AUDIO
    assert result.content_type == "audio/mpeg"
    assert result.size == len(DEFAULT_AUDIO)
    call = fake_openai.speech.calls[0]
    assert call["input"] == "Breathe in"
    assert call["voice"] == settings.tts_voice
    assert call["response_format"] == "mp3"


async def test_synthesize_rejects_empty_audio(speech_service, fake_openai):
    fake_openai.speech.audio = b""

    with pytest.raises(SpeechServiceError, match="Empty audio"):
        await speech_service.synthesize("Breathe in")


async def test_transcribe_strips_text(speech_service, fake_openai):
    text = await speech_service.transcribe(b"abc", filename="clip.webm")

    assert text == "I want to feel grounded"
    call = fake_openai.transcriptions.calls[0]
    assert call["model"] == settings.transcription_model
    assert call["file"] == ("clip.webm", b"abc", "audio/webm")


async def test_transcribe_wraps_upstream_errors(speech_service, fake_openai):
    fake_openai.transcriptions.error = RuntimeError("unsupported format")

    with pytest.raises(SpeechServiceError, match="unsupported format"):
        await speech_service.transcribe(b"abc")


async def test_close_releases_client(chat_service, fake_openai):
    await chat_service.close()

    assert fake_openai.closed is True
