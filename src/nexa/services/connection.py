"""WebSocket client channels and the registry of connected clients."""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ..interaction.directives import DeviceIntent
from ..interaction.listener import SoundCue
from ..interaction.state_machine import InteractionState
from ..schemas.messages import ConversationMessage
from .audio_buffer import AudioBuffer

logger = logging.getLogger(__name__)

CHUNK_BYTES = 32 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClientChannel:
    """
    Presentation channel for one WebSocket client.

    Implements both the session listener (state, transcript, cues, intents,
    logout) and the audio output. Audio is streamed as PCM16 chunks framed by
    tts_audio_start / tts_audio_end; render() then waits for the buffer's
    duration so playback end lines up with what the client hears.
    """

    client_id: str
    websocket: WebSocket
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    closed: bool = False
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def update_activity(self) -> None:
        self.last_activity = _utcnow()

    async def send(self, message: dict[str, Any]) -> bool:
        """Send a JSON message; returns False once the socket is gone."""

        if self.closed:
            return False
        async with self._send_lock:
            try:
                if self.websocket.application_state is WebSocketState.DISCONNECTED:
                    self.closed = True
                    return False
                await self.websocket.send_json(message)
                return True
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                logger.warning("Error sending to %s: %s", self.client_id, exc)
                self.closed = True
                return False

    # SessionListener -------------------------------------------------
    async def on_state(self, state: InteractionState) -> None:
        await self.send({"type": "state", "state": state.value, "label": state.label})

    async def on_transcript(self, message: ConversationMessage) -> None:
        await self.send({"type": "transcript", **message.model_dump(mode="json")})

    async def on_sound(self, cue: SoundCue) -> None:
        await self.send({"type": "sfx", "cue": cue.value})

    async def on_intent(self, intent: DeviceIntent) -> None:
        await self.send(
            {"type": "intent", "command": intent.command, "argument": intent.argument}
        )

    async def on_logout(self, reason: str) -> None:
        await self.send({"type": "logout", "reason": reason})

    async def send_error(self, detail: Any) -> None:
        await self.send({"type": "error", "detail": detail})

    # AudioOutput -----------------------------------------------------
    async def render(self, buffer: AudioBuffer) -> None:
        pcm = b"" if buffer.is_silent else buffer.to_pcm16()
        total_chunks = (len(pcm) + CHUNK_BYTES - 1) // CHUNK_BYTES
        await self.send(
            {
                "type": "tts_audio_start",
                "sample_rate": buffer.sample_rate,
                "channels": buffer.channels,
                "duration": buffer.duration,
                "total_bytes": len(pcm),
                "total_chunks": total_chunks,
            }
        )
        try:
            for index in range(total_chunks):
                chunk = pcm[index * CHUNK_BYTES : (index + 1) * CHUNK_BYTES]
                await self.send(
                    {
                        "type": "tts_audio_chunk",
                        "data": base64.b64encode(chunk).decode("utf-8"),
                        "chunk_index": index,
                        "is_last": index == total_chunks - 1,
                    }
                )
            await self.send({"type": "tts_audio_end"})
            await asyncio.sleep(buffer.duration)
        except asyncio.CancelledError:
            await self.send({"type": "tts_audio_cancelled"})
            raise


class VoiceConnectionManager:
    """Manages active WebSocket connections."""

    def __init__(self) -> None:
        self.active_connections: Dict[str, ClientChannel] = {}

    async def connect(self, websocket: WebSocket, client_id: str) -> ClientChannel:
        """Accept a new WebSocket connection and register its channel."""
        await websocket.accept()
        previous = self.active_connections.get(client_id)
        if previous is not None:
            logger.info("Replacing existing connection for %s", client_id)
            previous.closed = True
        channel = ClientChannel(client_id=client_id, websocket=websocket)
        self.active_connections[client_id] = channel
        logger.info("Client connected: %s", client_id)
        return channel

    def disconnect(self, client_id: str, channel: Optional[ClientChannel] = None) -> None:
        """Remove a client channel (only if it is still the registered one)."""
        current = self.active_connections.get(client_id)
        if current is None or (channel is not None and current is not channel):
            return
        current.closed = True
        del self.active_connections[client_id]
        logger.info("Client disconnected: %s", client_id)


__all__ = ["CHUNK_BYTES", "ClientChannel", "VoiceConnectionManager"]
