"""
Directive parser for raw model completions.

The language model embeds control markers in its text. This module pulls
them out into typed directives and returns the text the user should see
and hear.

Recognized markers:
    [[STATE:<name>]]          state override (unknown names are ignored)
    [[ACTION:LOCKOUT]]        end the session after the utterance
    [LOG_INCIDENT:<kind>]     incident for the administrator
    [[ADMIN_NOTIFY:<text>]]   incident of kind "Query" with free-text detail
    [[CALL:<number>]] etc.    client-side device intent
    [THINKING]                holding utterance, real answer follows
    [SING]                    speak the message in a singing style

Stage directions such as "(smiles)" or "*smiling*" and sound captions like
"[SFX: ...]" are removed without producing directives.

Usage:
    parsed = parse("Careful. [[STATE:WARNING]] (frowns)")
    parsed.cleaned         # "Careful."
    parsed.state_override  # InteractionState.WARNING
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .state_machine import InteractionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateOverride:
    state: InteractionState


@dataclass(frozen=True)
class ActionLockout:
    pass


@dataclass(frozen=True)
class IncidentLog:
    kind: str
    detail: Optional[str] = None


@dataclass(frozen=True)
class SingMarker:
    pass


@dataclass(frozen=True)
class ThinkingMarker:
    pass


@dataclass(frozen=True)
class DeviceIntent:
    command: str
    argument: str


Directive = Union[
    StateOverride, ActionLockout, IncidentLog, SingMarker, ThinkingMarker, DeviceIntent
]


@dataclass(frozen=True)
class ParsedResponse:
    """Cleaned display text plus the directives found, in encounter order."""

    cleaned: str
    directives: tuple[Directive, ...] = ()

    @property
    def state_override(self) -> Optional[InteractionState]:
        """The last state override in the completion, if any."""

        overrides = [d.state for d in self.directives if isinstance(d, StateOverride)]
        return overrides[-1] if overrides else None

    @property
    def lockout(self) -> bool:
        return any(isinstance(d, ActionLockout) for d in self.directives)

    @property
    def thinking(self) -> bool:
        return any(isinstance(d, ThinkingMarker) for d in self.directives)

    @property
    def sing(self) -> bool:
        return any(isinstance(d, SingMarker) for d in self.directives)

    @property
    def incidents(self) -> list[IncidentLog]:
        return [d for d in self.directives if isinstance(d, IncidentLog)]

    @property
    def intents(self) -> list[DeviceIntent]:
        return [d for d in self.directives if isinstance(d, DeviceIntent)]


Builder = Callable[["re.Match[str]"], Optional[Directive]]


def _build_state(match: "re.Match[str]") -> Optional[Directive]:
    name = re.sub(r"\s+", "_", match.group(1).strip().upper())
    try:
        return StateOverride(InteractionState(name))
    except ValueError:
        logger.debug("Ignoring unknown state override %r", match.group(1))
        return None


def _build_action(match: "re.Match[str]") -> Optional[Directive]:
    if match.group(1).strip().upper() == "LOCKOUT":
        return ActionLockout()
    logger.debug("Ignoring unknown action %r", match.group(1))
    return None


def _build_admin_notify(match: "re.Match[str]") -> Optional[Directive]:
    return IncidentLog(kind="Query", detail=match.group(1).strip() or None)


def _build_intent(match: "re.Match[str]") -> Optional[Directive]:
    return DeviceIntent(command=match.group(1).upper(), argument=match.group(2).strip())


def _build_incident(match: "re.Match[str]") -> Optional[Directive]:
    kind = match.group(1).strip()
    return IncidentLog(kind=kind) if kind else None


# Ordered: double-bracket tokens are removed before single-bracket ones so
# that "[[THINKING]]" does not leave stray brackets behind.
MARKERS: tuple[tuple[re.Pattern[str], Optional[Builder]], ...] = (
    (re.compile(r"\[\[\s*STATE\s*:\s*([^\]]*?)\s*\]\]", re.IGNORECASE), _build_state),
    (re.compile(r"\[\[\s*ACTION\s*:\s*([^\]]*?)\s*\]\]", re.IGNORECASE), _build_action),
    (
        re.compile(r"\[\[\s*ADMIN_NOTIFY\s*:\s*([^\]]*?)\s*\]\]", re.IGNORECASE),
        _build_admin_notify,
    ),
    (
        re.compile(
            r"\[\[\s*(WHATSAPP|CALL|OPEN|ALARM)\s*:\s*([^\]]*?)\s*\]\]", re.IGNORECASE
        ),
        _build_intent,
    ),
    (re.compile(r"\[\[[^\]]*\]\]"), None),
    (
        re.compile(r"\[\s*LOG_INCIDENT\s*:\s*([^\]]*?)\s*\]", re.IGNORECASE),
        _build_incident,
    ),
    (re.compile(r"\[\s*THINKING\s*\]", re.IGNORECASE), lambda _m: ThinkingMarker()),
    (re.compile(r"\[\s*SING\s*\]", re.IGNORECASE), lambda _m: SingMarker()),
    (re.compile(r"\[\s*SFX\s*:[^\]]*\]", re.IGNORECASE), None),
)

STAGE_DIRECTIONS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\([^()]*\)"),
    re.compile(r"\*[^*\n]*\*"),
)

_WHITESPACE = re.compile(r"\s+")


def _strip_stage_directions(text: str) -> str:
    for pattern in STAGE_DIRECTIONS:
        # Nested parentheses unwrap one level per pass
        while True:
            stripped = pattern.sub(" ", text)
            if stripped == text:
                break
            text = stripped
    return text


def parse(raw: str) -> ParsedResponse:
    """Extract directives from ``raw`` and return the cleaned message."""

    found: list[tuple[int, Directive]] = []
    for pattern, builder in MARKERS:
        if builder is None:
            continue
        for match in pattern.finditer(raw):
            directive = builder(match)
            if directive is not None:
                found.append((match.start(), directive))
    found.sort(key=lambda item: item[0])

    text = raw
    for pattern, _builder in MARKERS:
        text = pattern.sub(" ", text)
    text = _strip_stage_directions(text)
    cleaned = _WHITESPACE.sub(" ", text).strip()

    directives = tuple(directive for _start, directive in found)
    if directives:
        logger.debug("Parsed %d directive(s): %s", len(directives), directives)
    return ParsedResponse(cleaned=cleaned, directives=directives)


__all__ = [
    "ActionLockout",
    "DeviceIntent",
    "Directive",
    "IncidentLog",
    "MARKERS",
    "ParsedResponse",
    "STAGE_DIRECTIONS",
    "SingMarker",
    "StateOverride",
    "ThinkingMarker",
    "parse",
]
