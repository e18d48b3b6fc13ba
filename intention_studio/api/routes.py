"""
HTTP API routes.

- POST /api/chat: forward a conversation to the completion model
- POST /api/speech: text-to-speech (JSON body) or transcription (multipart upload)

Errors are returned as {"error": ..., "details": ...} JSON bodies.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from intention_studio.config import settings
from intention_studio.services.chat_service import (
    ChatMessage,
    ChatService,
    ChatServiceError,
    MissingAPIKeyError,
    get_chat_service,
)
from intention_studio.services.speech_service import (
    SpeechService,
    SpeechServiceError,
    get_speech_service,
)

router = APIRouter(prefix="/api")

MISSING_KEY_ERROR = "Server is missing API key."


class ChatMessageIn(BaseModel):
    """A message as sent by the client."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatResponse(BaseModel):
    content: str


class TranscriptionResponse(BaseModel):
    text: str


def error_response(
    status_code: int, error: str, details: Optional[str] = None
) -> JSONResponse:
    """Build a JSON error body in the shape the client expects."""
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Generate the assistant reply for a conversation."""
    body = await _read_json(request)

    if not chat_service.is_configured:
        logger.error("Missing OPENAI_API_KEY")
        return error_response(500, MISSING_KEY_ERROR)

    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list):
        return error_response(400, "Request body must include messages array.")

    try:
        parsed: List[ChatMessageIn] = [ChatMessageIn.model_validate(m) for m in messages]
    except ValidationError as e:
        return error_response(
            400, "Each message must include a valid role and content.", str(e)
        )

    try:
        content = await chat_service.complete(
            [ChatMessage(role=m.role, content=m.content) for m in parsed]
        )
    except MissingAPIKeyError:
        return error_response(500, MISSING_KEY_ERROR)
    except ChatServiceError as e:
        logger.error(f"Chat route error: {e}")
        return error_response(500, "Failed to generate completion", str(e))

    return ChatResponse(content=content)


@router.post("/speech")
async def speech(
    request: Request,
    speech_service: SpeechService = Depends(get_speech_service),
):
    """
    Speech endpoint.

    A JSON body {"text": ...} returns synthesized audio (audio/mpeg).
    A multipart upload with a "file" field returns {"text": ...}.
    """
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("application/json"):
        return await _synthesize(request, speech_service)
    if content_type.startswith("multipart/form-data"):
        return await _transcribe(request, speech_service)

    return error_response(415, "Unsupported content type.")


async def _synthesize(request: Request, speech_service: SpeechService):
    body = await _read_json(request)

    if not speech_service.is_configured:
        logger.error("Missing OPENAI_API_KEY")
        return error_response(500, MISSING_KEY_ERROR)

    text = body.get("text") if isinstance(body, dict) else None
    if not isinstance(text, str) or not text.strip():
        return error_response(400, "Request body must include non-empty text.")

    try:
        result = await speech_service.synthesize(text)
    except MissingAPIKeyError:
        return error_response(500, MISSING_KEY_ERROR)
    except SpeechServiceError as e:
        logger.error(f"Speech route error: {e}")
        return error_response(500, "Failed to generate speech", str(e))

    logger.info(f"Returning {result.size} bytes of {result.content_type}")
    return Response(content=result.audio, media_type=result.content_type)


async def _transcribe(request: Request, speech_service: SpeechService):
    form = await request.form()
    upload = form.get("file")

    if not speech_service.is_configured:
        logger.error("Missing OPENAI_API_KEY")
        return error_response(500, MISSING_KEY_ERROR)

    if not isinstance(upload, StarletteUploadFile):
        return error_response(400, "Request must include an audio file.")

    audio = await upload.read()
    if not audio:
        return error_response(400, "Audio file is empty.")
    if len(audio) > settings.max_audio_bytes:
        return error_response(
            413, f"Audio file too large (max {settings.max_audio_bytes // (1024 * 1024)}MB)"
        )

    try:
        text = await speech_service.transcribe(
            audio,
            filename=upload.filename or "audio.webm",
            content_type=upload.content_type or "audio/webm",
        )
    except MissingAPIKeyError:
        return error_response(500, MISSING_KEY_ERROR)
    except SpeechServiceError as e:
        logger.error(f"Transcription route error: {e}")
        return error_response(500, "Failed to transcribe audio", str(e))

    logger.info(f"Transcribed {len(audio)} bytes into {len(text)} characters")
    return TranscriptionResponse(text=text)
