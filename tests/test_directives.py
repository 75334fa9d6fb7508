from __future__ import annotations

import pytest

from nexa.interaction.directives import (
    ActionLockout,
    DeviceIntent,
    IncidentLog,
    SingMarker,
    StateOverride,
    ThinkingMarker,
    parse,
)
from nexa.interaction.state_machine import InteractionState


def test_plain_text_passes_through() -> None:
    parsed = parse("Namaste, main Nexa hoon.")

    assert parsed.cleaned == "Namaste, main Nexa hoon."
    assert parsed.directives == ()


def test_state_override_and_stage_direction_are_removed() -> None:
    parsed = parse("Careful. [[STATE:WARNING]] (frowns) *sighs*")

    assert parsed.cleaned == "Careful."
    assert parsed.directives == (StateOverride(InteractionState.WARNING),)
    assert parsed.state_override is InteractionState.WARNING


@pytest.mark.parametrize(
    ("marker", "expected"),
    [
        ("[[STATE:protect]]", InteractionState.PROTECT),
        ("[[STATE: Study Hub ]]", InteractionState.STUDY_HUB),
        ("[[STATE:LATE NIGHT]]", InteractionState.LATE_NIGHT),
    ],
)
def test_state_names_are_case_and_space_tolerant(marker: str, expected: InteractionState) -> None:
    parsed = parse(f"Okay {marker}")

    assert parsed.state_override is expected
    assert parsed.cleaned == "Okay"


def test_unknown_state_is_stripped_without_directive() -> None:
    parsed = parse("Hmm [[STATE:DANCING]] theek hai")

    assert parsed.cleaned == "Hmm theek hai"
    assert parsed.directives == ()


def test_directives_keep_encounter_order() -> None:
    raw = (
        "[LOG_INCIDENT:Abuse] Bas. [[STATE:PROTECT]] "
        "Session khatam. [[ACTION:LOCKOUT]]"
    )

    parsed = parse(raw)

    assert parsed.directives == (
        IncidentLog("Abuse"),
        StateOverride(InteractionState.PROTECT),
        ActionLockout(),
    )
    assert parsed.cleaned == "Bas. Session khatam."
    assert parsed.lockout is True


def test_markers_only_yield_empty_text_but_keep_directives() -> None:
    parsed = parse("  [[STATE:WARNING]]  [[ACTION:LOCKOUT]] ")

    assert parsed.cleaned == ""
    assert len(parsed.directives) == 2


def test_thinking_and_sing_markers() -> None:
    parsed = parse("[THINKING] Ek second, sochti hoon.")
    assert parsed.thinking
    assert parsed.directives == (ThinkingMarker(),)
    assert parsed.cleaned == "Ek second, sochti hoon."

    sung = parse("[SING] Tum hi ho")
    assert sung.sing
    assert sung.directives == (SingMarker(),)
    assert sung.cleaned == "Tum hi ho"


def test_admin_notify_becomes_query_incident() -> None:
    parsed = parse("Sorry, main nahi bata sakti. [[ADMIN_NOTIFY:User 'Ravi' asked for personal info.]]")

    assert parsed.incidents == [IncidentLog("Query", "User 'Ravi' asked for personal info.")]
    assert parsed.cleaned == "Sorry, main nahi bata sakti."


def test_device_intents_are_extracted() -> None:
    parsed = parse("Calling sir... [[CALL:9876543210]] aur [[open:YouTube]]")

    assert parsed.intents == [
        DeviceIntent("CALL", "9876543210"),
        DeviceIntent("OPEN", "YouTube"),
    ]
    assert parsed.cleaned == "Calling sir... aur"


def test_unrecognized_double_bracket_tokens_are_stripped() -> None:
    parsed = parse("Done [[ACTION:REBOOT]] [[SOMETHING ELSE]] now")

    assert parsed.cleaned == "Done now"
    assert parsed.directives == ()


def test_sfx_captions_and_nested_parentheses_are_removed() -> None:
    parsed = parse("[SFX: Connection established] Hello ((soft) laugh) sir")

    assert parsed.cleaned == "Hello sir"


def test_whitespace_is_collapsed() -> None:
    parsed = parse("Line one\n\n   line   two\t[SING]")

    assert parsed.cleaned == "Line one line two"


def test_cleaned_never_contains_marker_syntax() -> None:
    raw = "[[STATE:WARNING]] a [LOG_INCIDENT:x] b [THINKING] c [[CALL:1]] d [[ACTION:LOCKOUT]]"

    cleaned = parse(raw).cleaned

    assert "[[" not in cleaned
    assert "]]" not in cleaned
    assert "[" not in cleaned
    assert cleaned == "a b c d"
