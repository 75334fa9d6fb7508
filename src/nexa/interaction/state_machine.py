"""Finite interaction state machine driving the HUD indicator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class InteractionState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    THINKING = "THINKING"
    SPEAKING = "SPEAKING"
    WARNING = "WARNING"
    PROTECT = "PROTECT"
    STUDY_HUB = "STUDY_HUB"
    LATE_NIGHT = "LATE_NIGHT"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


BUSY_STATES = frozenset({InteractionState.THINKING, InteractionState.SPEAKING})
ALERT_STATES = frozenset({InteractionState.WARNING, InteractionState.PROTECT})
RESTING_STATES = frozenset({InteractionState.IDLE, InteractionState.LATE_NIGHT})


def resting_state(
    privileged: bool,
    hour: int,
    override: bool = False,
    *,
    late_night_hour: int = 23,
) -> InteractionState:
    """Return the state a session settles into when nothing is happening."""

    if privileged and (hour >= late_night_hour or override):
        return InteractionState.LATE_NIGHT
    return InteractionState.IDLE


@dataclass(frozen=True)
class UserSubmitted:
    pass


@dataclass(frozen=True)
class SpeechRequested:
    pass


@dataclass(frozen=True)
class ListeningStarted:
    pass


@dataclass(frozen=True)
class ListeningStopped:
    pass


@dataclass(frozen=True)
class GenerationResolved:
    override: Optional[InteractionState] = None
    will_speak: bool = True


@dataclass(frozen=True)
class GenerationFailed:
    pass


@dataclass(frozen=True)
class PlaybackStarted:
    pass


@dataclass(frozen=True)
class PlaybackEnded:
    pass


@dataclass(frozen=True)
class FollowUpPending:
    pass


@dataclass(frozen=True)
class Settled:
    pass


@dataclass(frozen=True)
class StudyHubOpened:
    pass


@dataclass(frozen=True)
class StudyHubClosed:
    pass


@dataclass(frozen=True)
class LateNightToggled:
    enabled: bool


@dataclass(frozen=True)
class Interrupted:
    pass


@dataclass(frozen=True)
class SessionEnded:
    pass


Event = Union[
    UserSubmitted,
    SpeechRequested,
    ListeningStarted,
    ListeningStopped,
    GenerationResolved,
    GenerationFailed,
    PlaybackStarted,
    PlaybackEnded,
    FollowUpPending,
    Settled,
    StudyHubOpened,
    StudyHubClosed,
    LateNightToggled,
    Interrupted,
    SessionEnded,
]


def transition(
    current: InteractionState, event: Event, resting: InteractionState
) -> InteractionState:
    """Return the state that follows ``current`` once ``event`` is applied.

    ``resting`` is the caller's current resting state (see ``resting_state``);
    every settle point lands there. Events that do not apply to ``current``
    leave it unchanged.
    """

    if isinstance(event, (UserSubmitted, SpeechRequested)):
        if current in BUSY_STATES:
            return current
        return InteractionState.THINKING

    if isinstance(event, GenerationResolved):
        if event.override in ALERT_STATES:
            return event.override
        if event.will_speak:
            return InteractionState.THINKING
        return resting

    if isinstance(event, PlaybackStarted):
        if current in ALERT_STATES:
            return current
        return InteractionState.SPEAKING

    if isinstance(event, PlaybackEnded):
        if current is InteractionState.STUDY_HUB:
            return current
        return resting

    if isinstance(event, FollowUpPending):
        return InteractionState.THINKING

    if isinstance(event, Settled):
        if current in (InteractionState.LISTENING, InteractionState.STUDY_HUB):
            return current
        return resting

    if isinstance(event, (GenerationFailed, Interrupted)):
        return resting

    if isinstance(event, StudyHubOpened):
        return InteractionState.STUDY_HUB

    if isinstance(event, StudyHubClosed):
        if current is InteractionState.STUDY_HUB:
            return resting
        return current

    if isinstance(event, LateNightToggled):
        return InteractionState.LATE_NIGHT if event.enabled else resting

    if isinstance(event, ListeningStarted):
        if current in RESTING_STATES:
            return InteractionState.LISTENING
        return current

    if isinstance(event, ListeningStopped):
        if current is InteractionState.LISTENING:
            return resting
        return current

    if isinstance(event, SessionEnded):
        return InteractionState.IDLE

    raise TypeError(f"Unsupported interaction event: {event!r}")


__all__ = [
    "ALERT_STATES",
    "BUSY_STATES",
    "Event",
    "FollowUpPending",
    "GenerationFailed",
    "GenerationResolved",
    "InteractionState",
    "Interrupted",
    "LateNightToggled",
    "ListeningStarted",
    "ListeningStopped",
    "PlaybackEnded",
    "PlaybackStarted",
    "RESTING_STATES",
    "SessionEnded",
    "Settled",
    "SpeechRequested",
    "StudyHubClosed",
    "StudyHubOpened",
    "UserSubmitted",
    "resting_state",
    "transition",
]
