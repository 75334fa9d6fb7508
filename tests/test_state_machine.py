from __future__ import annotations

import pytest

from nexa.interaction.state_machine import (
    FollowUpPending,
    GenerationFailed,
    GenerationResolved,
    InteractionState as S,
    Interrupted,
    LateNightToggled,
    ListeningStarted,
    ListeningStopped,
    PlaybackEnded,
    PlaybackStarted,
    SessionEnded,
    Settled,
    SpeechRequested,
    StudyHubClosed,
    StudyHubOpened,
    UserSubmitted,
    resting_state,
    transition,
)


@pytest.mark.parametrize(
    ("privileged", "hour", "override", "expected"),
    [
        (True, 23, False, S.LATE_NIGHT),
        (True, 22, False, S.IDLE),
        (True, 10, True, S.LATE_NIGHT),
        (False, 23, True, S.IDLE),
        (False, 2, False, S.IDLE),
    ],
)
def test_resting_state(privileged: bool, hour: int, override: bool, expected: S) -> None:
    assert resting_state(privileged, hour, override) is expected


def test_resting_state_threshold_is_configurable() -> None:
    assert resting_state(True, 21, late_night_hour=21) is S.LATE_NIGHT
    assert resting_state(True, 20, late_night_hour=21) is S.IDLE


@pytest.mark.parametrize("event", [UserSubmitted(), SpeechRequested()])
def test_input_moves_to_thinking_unless_busy(event) -> None:
    assert transition(S.IDLE, event, S.IDLE) is S.THINKING
    assert transition(S.LISTENING, event, S.IDLE) is S.THINKING
    assert transition(S.THINKING, event, S.IDLE) is S.THINKING
    assert transition(S.SPEAKING, event, S.IDLE) is S.SPEAKING


@pytest.mark.parametrize("alert", [S.WARNING, S.PROTECT])
def test_alert_override_wins_on_resolution(alert: S) -> None:
    assert transition(S.THINKING, GenerationResolved(alert, will_speak=True), S.IDLE) is alert
    assert transition(S.THINKING, GenerationResolved(alert, will_speak=False), S.IDLE) is alert


def test_resolution_without_alert() -> None:
    assert transition(S.THINKING, GenerationResolved(None, will_speak=True), S.IDLE) is S.THINKING
    assert (
        transition(S.THINKING, GenerationResolved(None, will_speak=False), S.LATE_NIGHT)
        is S.LATE_NIGHT
    )
    # Non-alert overrides do not change the state on their own
    assert (
        transition(S.THINKING, GenerationResolved(S.STUDY_HUB, will_speak=True), S.IDLE)
        is S.THINKING
    )


def test_playback_started() -> None:
    assert transition(S.THINKING, PlaybackStarted(), S.IDLE) is S.SPEAKING
    assert transition(S.WARNING, PlaybackStarted(), S.IDLE) is S.WARNING
    assert transition(S.PROTECT, PlaybackStarted(), S.IDLE) is S.PROTECT


def test_playback_ended() -> None:
    assert transition(S.SPEAKING, PlaybackEnded(), S.IDLE) is S.IDLE
    assert transition(S.SPEAKING, PlaybackEnded(), S.LATE_NIGHT) is S.LATE_NIGHT
    assert transition(S.WARNING, PlaybackEnded(), S.IDLE) is S.IDLE
    assert transition(S.STUDY_HUB, PlaybackEnded(), S.IDLE) is S.STUDY_HUB


def test_follow_up_returns_to_thinking() -> None:
    assert transition(S.SPEAKING, FollowUpPending(), S.IDLE) is S.THINKING


def test_settled_keeps_listening_and_study_hub() -> None:
    assert transition(S.WARNING, Settled(), S.IDLE) is S.IDLE
    assert transition(S.IDLE, Settled(), S.LATE_NIGHT) is S.LATE_NIGHT
    assert transition(S.LISTENING, Settled(), S.IDLE) is S.LISTENING
    assert transition(S.STUDY_HUB, Settled(), S.IDLE) is S.STUDY_HUB


@pytest.mark.parametrize("event", [GenerationFailed(), Interrupted()])
def test_failures_and_interrupts_rest(event) -> None:
    for state in (S.THINKING, S.SPEAKING, S.WARNING, S.LISTENING):
        assert transition(state, event, S.LATE_NIGHT) is S.LATE_NIGHT


def test_study_hub() -> None:
    assert transition(S.IDLE, StudyHubOpened(), S.IDLE) is S.STUDY_HUB
    assert transition(S.SPEAKING, StudyHubOpened(), S.IDLE) is S.STUDY_HUB
    assert transition(S.STUDY_HUB, StudyHubClosed(), S.LATE_NIGHT) is S.LATE_NIGHT
    assert transition(S.SPEAKING, StudyHubClosed(), S.IDLE) is S.SPEAKING


def test_late_night_toggle_applies_regardless_of_activity() -> None:
    assert transition(S.SPEAKING, LateNightToggled(True), S.LATE_NIGHT) is S.LATE_NIGHT
    assert transition(S.LATE_NIGHT, LateNightToggled(False), S.IDLE) is S.IDLE


def test_listening() -> None:
    assert transition(S.IDLE, ListeningStarted(), S.IDLE) is S.LISTENING
    assert transition(S.LATE_NIGHT, ListeningStarted(), S.LATE_NIGHT) is S.LISTENING
    assert transition(S.SPEAKING, ListeningStarted(), S.IDLE) is S.SPEAKING
    assert transition(S.LISTENING, ListeningStopped(), S.LATE_NIGHT) is S.LATE_NIGHT
    assert transition(S.THINKING, ListeningStopped(), S.IDLE) is S.THINKING


def test_session_ended_always_idles() -> None:
    for state in S:
        assert transition(state, SessionEnded(), S.LATE_NIGHT) is S.IDLE


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(TypeError):
        transition(S.IDLE, object(), S.IDLE)  # type: ignore[arg-type]


def test_labels() -> None:
    assert S.STUDY_HUB.label == "STUDY HUB"
    assert S.IDLE.label == "IDLE"
