"""
Pytest configuration and shared fixtures for the Intention Studio test suite.

The hosted OpenAI client is replaced by an in-memory fake exposing the same
attribute paths (chat.completions, audio.speech, audio.transcriptions).
"""

import asyncio
from types import SimpleNamespace
from typing import List, Optional, Tuple

import pytest

from intention_studio.config import settings
from intention_studio.services import chat_service as chat_service_module
from intention_studio.services import speech_service as speech_service_module
from intention_studio.services.chat_service import ChatService
from intention_studio.services.conversation_service import ConversationSession
from intention_studio.services.speech_service import SpeechService

DEFAULT_REPLY = "May your breath guide you back to this moment."
DEFAULT_AUDIO = b"ID3\x04fake-mp3-bytes"


class FakeCompletions:
    def __init__(self):
        self.calls: List[dict] = []
        self.reply: Optional[str] = DEFAULT_REPLY
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeSpeech:
    def __init__(self):
        self.calls: List[dict] = []
        self.audio = DEFAULT_AUDIO
        self.error: Optional[Exception] = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.audio)


class FakeTranscriptions:
    def __init__(self):
        self.calls: List[dict] = []
        self.text = " I want to feel grounded "
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeOpenAI:
    """Stand-in for openai.AsyncOpenAI."""

    def __init__(self):
        self.completions = FakeCompletions()
        self.speech = FakeSpeech()
        self.transcriptions = FakeTranscriptions()
        self.chat = SimpleNamespace(completions=self.completions)
        self.audio = SimpleNamespace(
            speech=self.speech, transcriptions=self.transcriptions
        )
        self.closed = False

    async def close(self):
        self.closed = True


class ClientRecorder:
    """Collects what a session sends to the client."""

    def __init__(self):
        self.json: List[dict] = []
        self.bytes: List[bytes] = []
        self.times: List[Tuple[float, str]] = []
        self.session: Optional[ConversationSession] = None
        self.started_while_speaking = False
        self.started_while_busy = False

    async def send_json(self, data: dict) -> bool:
        if data["type"] in ("start_recognition", "start_recording"):
            if self.session is not None and self.session.is_speaking:
                self.started_while_speaking = True
            if self.session is not None and self.session.is_busy:
                self.started_while_busy = True
        self.json.append(data)
        self.times.append((asyncio.get_running_loop().time(), data["type"]))
        return True

    async def send_bytes(self, data: bytes) -> bool:
        self.bytes.append(data)
        return True

    @property
    def commands(self) -> List[str]:
        return [m["type"] for m in self.json if m["type"] != "state"]

    @property
    def alerts(self) -> List[str]:
        return [m["message"] for m in self.json if m["type"] == "alert"]

    def first_time(self, msg_type: str) -> float:
        return next(t for t, kind in self.times if kind == msg_type)

    @property
    def last_state(self) -> dict:
        return [m for m in self.json if m["type"] == "state"][-1]["state"]


async def settle(session: ConversationSession, rounds: int = 50) -> None:
    """Wait until the session has no background work left."""
    for _ in range(rounds):
        await asyncio.sleep(0)
        pending = [task for task in session._tasks if not task.done()]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)
    raise AssertionError("session did not settle")


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    return "sk-test"


@pytest.fixture
def no_api_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)


@pytest.fixture
def chat_service(fake_openai) -> ChatService:
    return ChatService(client=fake_openai)


@pytest.fixture
def speech_service(fake_openai) -> SpeechService:
    return SpeechService(client=fake_openai)


@pytest.fixture
def installed_services(monkeypatch, chat_service, speech_service):
    """Make the global service getters return the fake-backed services."""
    monkeypatch.setattr(chat_service_module, "_chat_service", chat_service)
    monkeypatch.setattr(speech_service_module, "_speech_service", speech_service)
    return chat_service, speech_service


@pytest.fixture
def recorder() -> ClientRecorder:
    return ClientRecorder()


@pytest.fixture
async def session(chat_service, speech_service, recorder):
    conversation = ConversationSession(
        session_id="test-session",
        chat_service=chat_service,
        speech_service=speech_service,
        send_json=recorder.send_json,
        send_bytes=recorder.send_bytes,
        restart_delay=0,
        auto_submit_delay=0,
        error_resume_delay=0,
    )
    recorder.session = conversation
    yield conversation
    await conversation.close()


@pytest.fixture
async def make_session(chat_service, speech_service, recorder):
    """Build a session with real timer delays (in seconds)."""
    created: List[ConversationSession] = []

    def factory(restart=0.0, auto_submit=0.0, error_resume=0.0) -> ConversationSession:
        conversation = ConversationSession(
            session_id="timed-session",
            chat_service=chat_service,
            speech_service=speech_service,
            send_json=recorder.send_json,
            send_bytes=recorder.send_bytes,
            restart_delay=restart,
            auto_submit_delay=auto_submit,
            error_resume_delay=error_resume,
        )
        recorder.session = conversation
        created.append(conversation)
        return conversation

    yield factory
    for conversation in created:
        await conversation.close()
