"""
Conversation orchestration for the Yoga Intention Studio.

The browser owns the devices (speech recognition, microphone recorder and
audio element); this module owns the decisions. A ConversationSession
receives device events from the client, talks to the chat and speech
services, and sends back commands plus a state snapshot after every change.

Sequencing rules:
1. Recognition and recording never start while the assistant is speaking
2. Speaking stops any active recognition and recording first
3. In continuous mode recognition restarts once the session is quiet again
   (not speaking, not listening, not loading)
4. A final recognition result stops recognition and is auto-submitted
5. Replies to auto-submitted messages are always spoken
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Coroutine, Dict, List, Optional, Set

from loguru import logger

from intention_studio.config import settings
from intention_studio.prompts import (
    CHAT_ERROR_REPLY,
    MICROPHONE_DENIED_ALERT,
    SPEECH_FAILED_ALERT,
    TRANSCRIPTION_FAILED_ALERT,
    get_system_prompt,
)
from intention_studio.services.chat_service import (
    ChatMessage,
    ChatService,
    ChatServiceError,
    MissingAPIKeyError,
)
from intention_studio.services.speech_service import SpeechService, SpeechServiceError

SendJson = Callable[[dict], Awaitable[object]]
SendBytes = Callable[[bytes], Awaitable[object]]


class Command(str, Enum):
    """Messages sent from the session to the client."""

    STATE = "state"
    START_RECOGNITION = "start_recognition"
    STOP_RECOGNITION = "stop_recognition"
    START_RECORDING = "start_recording"
    STOP_RECORDING = "stop_recording"
    PLAY_AUDIO = "play_audio"
    ALERT = "alert"


class Indicator(str, Enum):
    """Status badge shown next to the continuous listening toggle."""

    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PAUSED = "paused"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Message:
    """A message in the conversation transcript."""

    role: str
    content: str
    id: str
    timestamp: Optional[int] = None
    is_floating: bool = False

    def to_dict(self) -> Dict:
        return {
            "role": self.role,
            "content": self.content,
            "id": self.id,
            "timestamp": self.timestamp,
            "is_floating": self.is_floating,
        }


@dataclass
class RecognitionAlternative:
    """One entry of a speech recognition result list."""

    transcript: str
    is_final: bool = False


class ConversationSession:
    """
    State machine for a single connected client.

    All public coroutines are safe to call in any state: requests that would
    collide with ongoing audio I/O are ignored and logged.
    """

    def __init__(
        self,
        session_id: str,
        chat_service: ChatService,
        speech_service: SpeechService,
        send_json: SendJson,
        send_bytes: SendBytes,
        restart_delay: Optional[float] = None,
        auto_submit_delay: Optional[float] = None,
        error_resume_delay: Optional[float] = None,
    ):
        self.session_id = session_id
        self._chat = chat_service
        self._speech = speech_service
        self._send_json = send_json
        self._send_bytes = send_bytes

        self.restart_delay = (
            settings.restart_listening_delay_ms / 1000.0
            if restart_delay is None
            else restart_delay
        )
        self.auto_submit_delay = (
            settings.auto_submit_delay_ms / 1000.0
            if auto_submit_delay is None
            else auto_submit_delay
        )
        self.error_resume_delay = (
            settings.resume_after_error_delay_ms / 1000.0
            if error_resume_delay is None
            else error_resume_delay
        )

        self.messages: List[Message] = [
            Message(role="system", content=get_system_prompt(), id="system-prompt")
        ]
        self.input_text = ""
        self.is_recording = False
        self.is_loading = False
        self.is_speaking = False
        self.is_listening = False
        self.continuous_listening = False

        # Start was requested but the client has not confirmed it yet
        self._recognition_requested = False
        # A final transcript is waiting for its auto-submit delay
        self._submit_pending = False
        # Push-to-talk audio is expected from the client
        self._awaiting_audio = False
        self.is_transcribing = False
        # One-shot delay for the next restart, consumed once the session is quiet
        self._resume_delay: Optional[float] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def indicator(self) -> Indicator:
        if self.is_speaking:
            return Indicator.SPEAKING
        if self.is_listening:
            return Indicator.LISTENING
        if self.continuous_listening:
            return Indicator.PAUSED
        return Indicator.IDLE

    @property
    def is_busy(self) -> bool:
        """A chat request or a transcription is in flight."""
        return self.is_loading or self.is_transcribing

    @property
    def visible_messages(self) -> List[Message]:
        return [msg for msg in self.messages if msg.role != "system"]

    def _should_restart_listening(self) -> bool:
        return (
            self.continuous_listening
            and not self.is_speaking
            and not self.is_listening
            and not self.is_busy
            and not self._recognition_requested
            and not self._submit_pending
            and not self._closed
        )

    def snapshot(self) -> Dict:
        """Serializable view of the session for the client."""
        return {
            "session_id": self.session_id,
            "messages": [msg.to_dict() for msg in self.visible_messages],
            "input": self.input_text,
            "is_recording": self.is_recording,
            "is_loading": self.is_busy,
            "is_speaking": self.is_speaking,
            "is_listening": self.is_listening,
            "continuous_listening": self.continuous_listening,
            "indicator": self.indicator.value,
            "can_toggle_continuous": not self.is_speaking,
            "can_record": not self.is_busy and not self.continuous_listening,
            "can_send": bool(self.input_text.strip()) and not self.is_busy,
            "input_read_only": self.is_listening,
        }

    # ------------------------------------------------------------------
    # Outgoing messages and background work
    # ------------------------------------------------------------------

    async def _command(self, command: Command, **payload) -> None:
        await self._send_json({"type": command.value, **payload})

    async def _publish(self) -> None:
        self._sync_restart()
        await self._command(Command.STATE, state=self.snapshot())

    async def _alert(self, message: str) -> None:
        await self._command(Command.ALERT, message=message)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine in the background, tracked for cleanup on close."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                f"Background task failed for {self.session_id}: {exc}"
            )

    def _sync_restart(self) -> None:
        """
        Schedule or cancel the continuous-mode recognition restart.

        A resume delay requested after a playback failure is kept until the
        session is quiet and then replaces the default restart delay once.
        """
        pending = self._restart_task is not None and not self._restart_task.done()

        if not self._should_restart_listening():
            if pending and self._restart_task is not asyncio.current_task():
                self._restart_task.cancel()
            self._restart_task = None
            return

        delay = self._resume_delay
        self._resume_delay = None
        if pending and delay is None:
            return
        if pending:
            self._restart_task.cancel()

        wait = self.restart_delay if delay is None else delay
        self._restart_task = self.spawn(self._restart_after(wait))

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._restart_task = None
        if self._should_restart_listening():
            logger.debug(f"Restarting speech recognition for {self.session_id}")
            await self.start_recognition()

    # ------------------------------------------------------------------
    # Text input and chat
    # ------------------------------------------------------------------

    async def set_input(self, text: str) -> None:
        """Update the input box from the user's typing."""
        if self.is_busy or self.is_listening:
            return
        self.input_text = text
        await self._publish()

    def _chat_history(self) -> List[ChatMessage]:
        return [ChatMessage(role=msg.role, content=msg.content) for msg in self.messages]

    async def submit_message(self, text: str, always_speak: bool = False) -> bool:
        """
        Send a user message and append the assistant's reply.

        Args:
            text: The user's message
            always_speak: Speak the reply even outside continuous mode

        Returns:
            True if the message was accepted
        """
        if not text or not text.strip() or self.is_busy:
            return False

        now = _now_ms()
        self.messages.append(
            Message(
                role="user",
                content=text.strip(),
                id=f"user-{now}",
                timestamp=now,
                is_floating=True,
            )
        )
        self.input_text = ""
        self.is_loading = True
        await self._publish()

        try:
            try:
                reply = await self._chat.complete(self._chat_history())
                now = _now_ms()
                self.messages.append(
                    Message(
                        role="assistant",
                        content=reply,
                        id=f"assistant-{now}",
                        timestamp=now,
                    )
                )
            except (ChatServiceError, MissingAPIKeyError) as e:
                logger.error(f"Error getting completion for {self.session_id}: {e}")
                reply = CHAT_ERROR_REPLY
                now = _now_ms()
                self.messages.append(
                    Message(
                        role="assistant",
                        content=reply,
                        id=f"error-{now}",
                        timestamp=now,
                    )
                )
            await self._publish()

            if always_speak or self.continuous_listening:
                await self.speak(reply)
        finally:
            self.is_loading = False
            await self._publish()

        return True

    async def auto_submit(self, text: str) -> bool:
        """Submit a recognized utterance; the reply is always spoken."""
        logger.info(f"Auto-submitting message for {self.session_id}: {text!r}")
        return await self.submit_message(text, always_speak=True)

    async def _auto_submit_after(self, text: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self._submit_pending = False
            raise
        self._submit_pending = False
        if not await self.auto_submit(text):
            await self._publish()

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------

    async def speak(self, text: str) -> bool:
        """
        Read text aloud on the client.

        Speaking takes the microphone away from recognition and recording.
        The session stays in the speaking state until the client reports the
        end of playback.

        Returns:
            True if audio was sent to the client
        """
        if not text or not text.strip():
            return False

        # Set first so stopping recognition does not schedule a restart
        self.is_speaking = True
        self._resume_delay = None
        if self.is_listening or self._recognition_requested:
            await self.stop_recognition()
        if self.is_recording:
            await self.stop_recording()
        await self._publish()

        try:
            result = await self._speech.synthesize(text)
        except (SpeechServiceError, MissingAPIKeyError) as e:
            logger.error(f"Error generating speech for {self.session_id}: {e}")
            self.is_speaking = False
            await self._alert(str(e) or SPEECH_FAILED_ALERT)
            self._resume_delay = self.error_resume_delay
            await self._publish()
            return False

        logger.debug(f"Sending {result.size} bytes of audio to {self.session_id}")
        await self._command(
            Command.PLAY_AUDIO, content_type=result.content_type, size=result.size
        )
        await self._send_bytes(result.audio)
        return True

    async def replay(self, message_id: str) -> bool:
        """Speak an existing assistant message again."""
        for msg in self.messages:
            if msg.id == message_id and msg.role == "assistant":
                return await self.speak(msg.content)
        logger.warning(f"Replay requested for unknown message {message_id}")
        return False

    async def playback_ended(self) -> None:
        logger.debug(f"Audio playback ended for {self.session_id}")
        self.is_speaking = False
        await self._publish()

    async def playback_failed(self, reason: str = "") -> None:
        logger.error(f"Error playing audio for {self.session_id}: {reason}")
        self.is_speaking = False
        self._resume_delay = self.error_resume_delay
        await self._publish()

    # ------------------------------------------------------------------
    # Speech recognition
    # ------------------------------------------------------------------

    async def set_continuous_listening(
        self, enabled: bool, microphone_granted: bool = True
    ) -> bool:
        """
        Toggle continuous listening.

        Returns:
            True if the toggle took effect
        """
        if self.is_speaking:
            logger.debug("Continuous listening toggle ignored while speaking")
            return False

        if enabled:
            if not microphone_granted:
                logger.warning(f"Microphone permission denied for {self.session_id}")
                await self._alert(MICROPHONE_DENIED_ALERT)
                return False
            self.continuous_listening = True
            await self.start_recognition()
        else:
            self.continuous_listening = False
            await self.stop_recognition()
            self.input_text = ""
            await self._publish()
        return True

    async def start_recognition(self) -> bool:
        if self.is_listening or self._recognition_requested:
            return False
        if self.is_speaking:
            logger.debug("Not starting recognition while speaking")
            return False

        logger.debug(f"Starting speech recognition for {self.session_id}")
        self._recognition_requested = True
        self._resume_delay = None
        await self._command(
            Command.START_RECOGNITION,
            lang=settings.recognition_language,
            continuous=True,
            interim_results=True,
        )
        await self._publish()
        return True

    async def stop_recognition(self) -> None:
        logger.debug(f"Stopping speech recognition for {self.session_id}")
        self._recognition_requested = False
        self.is_listening = False
        await self._command(Command.STOP_RECOGNITION)
        await self._publish()

    async def recognition_started(self) -> None:
        self._recognition_requested = False
        if self.is_speaking:
            # Raced with playback: hand the microphone back immediately
            await self.stop_recognition()
            return
        self.is_listening = True
        await self._publish()

    async def recognition_result(
        self, result_index: int, results: List[RecognitionAlternative]
    ) -> None:
        """Handle interim and final transcripts from the recognizer."""
        interim = ""
        final = ""
        for result in results[max(result_index, 0):]:
            if result.is_final:
                final += result.transcript + " "
            else:
                interim += result.transcript

        if interim:
            self.input_text = interim
            await self._publish()

        full_text = final.strip()
        if full_text and self.continuous_listening:
            logger.info(f"Final transcript for {self.session_id}: {full_text!r}")
            self.input_text = full_text
            self._submit_pending = True
            await self.stop_recognition()
            self.spawn(self._auto_submit_after(full_text, self.auto_submit_delay))

    async def recognition_error(self, error: str) -> None:
        logger.error(f"Speech recognition error for {self.session_id}: {error}")
        self._recognition_requested = False
        self.is_listening = False
        await self._publish()

    async def recognition_ended(self) -> None:
        logger.debug(f"Speech recognition ended for {self.session_id}")
        self._recognition_requested = False
        self.is_listening = False
        await self._publish()

    # ------------------------------------------------------------------
    # Push-to-talk recording
    # ------------------------------------------------------------------

    async def start_recording(self) -> bool:
        if self.is_recording:
            return False
        if self.is_busy or self.continuous_listening or self.is_speaking:
            logger.debug(f"Push-to-talk unavailable for {self.session_id}")
            return False

        self.is_recording = True
        self._awaiting_audio = True
        await self._command(Command.START_RECORDING)
        await self._publish()
        return True

    async def stop_recording(self) -> None:
        if not self.is_recording:
            return
        self.is_recording = False
        await self._command(Command.STOP_RECORDING)
        await self._publish()

    async def recording_complete(
        self,
        audio: bytes,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> Optional[str]:
        """
        Transcribe a finished push-to-talk recording into the input box.

        Audio that arrives without a recording in progress is dropped.

        Returns:
            The transcript, or None on failure
        """
        if not self._awaiting_audio:
            logger.warning(
                f"Dropping {len(audio)} bytes of unexpected audio for {self.session_id}"
            )
            return None

        self._awaiting_audio = False
        self.is_recording = False
        self.is_transcribing = True
        await self._publish()

        try:
            text = await self._speech.transcribe(
                audio, filename=filename, content_type=content_type
            )
            self.input_text = text
            return text
        except (SpeechServiceError, MissingAPIKeyError) as e:
            logger.error(f"Error transcribing audio for {self.session_id}: {e}")
            await self._alert(str(e) or TRANSCRIPTION_FAILED_ALERT)
            return None
        finally:
            self.is_transcribing = False
            await self._publish()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel timers and in-flight work."""
        self._closed = True
        tasks = [task for task in self._tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._restart_task = None
