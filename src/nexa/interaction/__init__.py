"""Response interpretation: directive parsing and the interaction state machine."""

from .directives import ParsedResponse, parse
from .listener import SessionListener, SoundCue
from .state_machine import InteractionState, resting_state, transition

__all__ = [
    "InteractionState",
    "ParsedResponse",
    "SessionListener",
    "SoundCue",
    "parse",
    "resting_state",
    "transition",
]
