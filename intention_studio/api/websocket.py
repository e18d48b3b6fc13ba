"""
WebSocket API for the voice conversation loop.

The browser keeps the devices and this endpoint keeps the state:
1. Client reports device events (recognition results, playback ended, ...)
2. The session decides what happens next
3. Commands and state snapshots are sent back to the client
4. Reply audio is sent as a binary frame after a play_audio command
5. Binary frames from the client are finished push-to-talk recordings
"""

import json
import uuid
from enum import Enum
from typing import Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from intention_studio.services.chat_service import get_chat_service
from intention_studio.services.conversation_service import (
    ConversationSession,
    RecognitionAlternative,
)
from intention_studio.services.speech_service import get_speech_service

router = APIRouter()


class MessageType(str, Enum):
    """Types of messages sent over WebSocket."""

    # Client -> Server
    SUBMIT = "submit"
    SET_INPUT = "set_input"
    SET_CONTINUOUS = "set_continuous"
    RECOGNITION_STARTED = "recognition_started"
    RECOGNITION_RESULT = "recognition_result"
    RECOGNITION_ERROR = "recognition_error"
    RECOGNITION_ENDED = "recognition_ended"
    START_RECORDING = "start_recording"
    STOP_RECORDING = "stop_recording"
    PLAYBACK_ENDED = "playback_ended"
    PLAYBACK_ERROR = "playback_error"
    REPLAY = "replay"
    PING = "ping"

    # Server -> Client
    CONNECTED = "connected"
    ERROR = "error"
    PONG = "pong"


class ConnectionManager:
    """Manages WebSocket connections and their conversation sessions."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.sessions: Dict[str, ConversationSession] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections[session_id] = websocket
        logger.info(f"Client connected: {session_id}")

    def create_session(self, session_id: str) -> ConversationSession:
        """Create the conversation session bound to a connection."""
        session = ConversationSession(
            session_id=session_id,
            chat_service=get_chat_service(),
            speech_service=get_speech_service(),
            send_json=lambda data: self.send_json(session_id, data),
            send_bytes=lambda data: self.send_bytes(session_id, data),
        )
        self.sessions[session_id] = session
        return session

    async def disconnect(self, session_id: str) -> None:
        """Remove a connection and shut down its session."""
        self.active_connections.pop(session_id, None)
        session = self.sessions.pop(session_id, None)
        if session is not None:
            await session.close()
        logger.info(f"Client disconnected: {session_id}")

    def is_connected(self, session_id: str) -> bool:
        """Check if a session is still connected."""
        return session_id in self.active_connections

    async def send_json(self, session_id: str, data: dict) -> bool:
        """Send JSON data to a specific client. Returns False if send failed."""
        websocket = self.active_connections.get(session_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(data)
            return True
        except Exception as e:
            logger.error(f"Failed to send JSON to {session_id}: {e}")
            self.active_connections.pop(session_id, None)
            return False

    async def send_bytes(self, session_id: str, data: bytes) -> bool:
        """Send binary data to a specific client. Returns False if send failed."""
        websocket = self.active_connections.get(session_id)
        if websocket is None:
            return False
        try:
            await websocket.send_bytes(data)
            return True
        except Exception as e:
            logger.error(f"Failed to send bytes to {session_id}: {e}")
            self.active_connections.pop(session_id, None)
            return False


# Global connection manager
manager = ConnectionManager()


async def handle_client_message(session: ConversationSession, data: dict) -> bool:
    """
    Route one JSON message from the client to the session.

    Long-running work (chat, speech, replays) is spawned so the receive
    loop keeps delivering device events such as playback_ended.

    Returns:
        False if the message type is unknown
    """
    msg_type = data.get("type")

    if msg_type == MessageType.PING:
        await manager.send_json(session.session_id, {"type": MessageType.PONG.value})

    elif msg_type == MessageType.SUBMIT:
        session.spawn(session.submit_message(str(data.get("text", ""))))

    elif msg_type == MessageType.SET_INPUT:
        await session.set_input(str(data.get("text", "")))

    elif msg_type == MessageType.SET_CONTINUOUS:
        await session.set_continuous_listening(
            bool(data.get("enabled", False)),
            microphone_granted=bool(data.get("microphone_granted", True)),
        )

    elif msg_type == MessageType.RECOGNITION_STARTED:
        await session.recognition_started()

    elif msg_type == MessageType.RECOGNITION_RESULT:
        results = [
            RecognitionAlternative(
                transcript=str(item.get("transcript", "")),
                is_final=bool(item.get("is_final", False)),
            )
            for item in data.get("results", [])
        ]
        await session.recognition_result(int(data.get("result_index", 0)), results)

    elif msg_type == MessageType.RECOGNITION_ERROR:
        await session.recognition_error(str(data.get("error", "unknown")))

    elif msg_type == MessageType.RECOGNITION_ENDED:
        await session.recognition_ended()

    elif msg_type == MessageType.START_RECORDING:
        await session.start_recording()

    elif msg_type == MessageType.STOP_RECORDING:
        await session.stop_recording()

    elif msg_type == MessageType.PLAYBACK_ENDED:
        await session.playback_ended()

    elif msg_type == MessageType.PLAYBACK_ERROR:
        await session.playback_failed(str(data.get("error", "")))

    elif msg_type == MessageType.REPLAY:
        session.spawn(session.replay(str(data.get("message_id", ""))))

    else:
        return False

    return True


@router.websocket("/ws/conversation")
async def conversation_endpoint(websocket: WebSocket):
    """WebSocket endpoint for the voice conversation loop."""
    session_id = str(uuid.uuid4())

    try:
        await manager.connect(websocket, session_id)
        session = manager.create_session(session_id)

        await manager.send_json(
            session_id,
            {
                "type": MessageType.CONNECTED.value,
                "session_id": session_id,
                "state": session.snapshot(),
            },
        )

        while manager.is_connected(session_id):
            message = await websocket.receive()

            if message.get("type") == "websocket.disconnect":
                logger.info(f"Received disconnect message for {session_id}")
                break

            try:
                if message.get("bytes") is not None:
                    audio = message["bytes"]
                    if not audio:
                        continue
                    session.spawn(session.recording_complete(audio))

                elif message.get("text") is not None:
                    data = json.loads(message["text"])
                    if not isinstance(data, dict) or not await handle_client_message(
                        session, data
                    ):
                        await manager.send_json(
                            session_id,
                            {
                                "type": MessageType.ERROR.value,
                                "message": f"Unknown message: {data!r}"[:200],
                            },
                        )

            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON from {session_id}: {e}")
                await manager.send_json(
                    session_id,
                    {"type": MessageType.ERROR.value, "message": "Invalid JSON message"},
                )
            except (ValueError, TypeError, AttributeError) as e:
                logger.error(f"Malformed message from {session_id}: {e}")
                await manager.send_json(
                    session_id,
                    {"type": MessageType.ERROR.value, "message": f"Malformed message: {e}"},
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {session_id}")
    except Exception as e:
        logger.error(f"WebSocket error for {session_id}: {e}")
    finally:
        await manager.disconnect(session_id)
