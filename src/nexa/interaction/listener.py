"""Callback surface a session uses to talk to its client."""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from ..schemas.messages import ConversationMessage
from .directives import DeviceIntent
from .state_machine import InteractionState


class SoundCue(str, Enum):
    ERROR = "error"
    ALERT = "alert"
    LOGIN = "login"
    ADMIN_LOGIN = "admin_login"
    MIC_ON = "mic_on"
    MIC_OFF = "mic_off"
    NOTIFICATION = "notification"


class SessionListener(Protocol):
    """Receives presentation events produced by a conversation session."""

    async def on_state(self, state: InteractionState) -> None: ...

    async def on_transcript(self, message: ConversationMessage) -> None: ...

    async def on_sound(self, cue: SoundCue) -> None: ...

    async def on_intent(self, intent: DeviceIntent) -> None: ...

    async def on_logout(self, reason: str) -> None: ...


__all__ = ["SessionListener", "SoundCue"]
