"""
Tests for session models and commands

Covers window validation, placement normalization and patch parsing.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from training_registry.sessions.commands import CreateSession, UpdateSession
from training_registry.sessions.models import (
    LabelPlacement,
    SessionWindow,
    StructuredPlacement,
    normalize_placement,
)
from tests.helpers import T0, session_spec


def test_window_requires_start_before_end() -> None:
    SessionWindow(start=T0, end=T0 + timedelta(minutes=1))

    with pytest.raises(PydanticValidationError, match="start must be before"):
        SessionWindow(start=T0, end=T0)
    with pytest.raises(PydanticValidationError):
        SessionWindow(start=T0 + timedelta(hours=1), end=T0)


def test_window_rejects_naive_timestamps() -> None:
    with pytest.raises(PydanticValidationError, match="timezone-aware"):
        SessionWindow(start=datetime(2025, 1, 15, 13, 0), end=T0 + timedelta(hours=3))


def test_window_normalizes_offsets_to_utc() -> None:
    plus8 = timezone(timedelta(hours=8))
    window = SessionWindow(
        start=datetime(2025, 1, 15, 21, 0, tzinfo=plus8),
        end=datetime(2025, 1, 15, 23, 0, tzinfo=plus8),
    )
    assert window.start == datetime(2025, 1, 15, 13, 0, tzinfo=timezone.utc)
    assert window.start.utcoffset() == timedelta(0)


def test_window_parses_iso_strings() -> None:
    window = SessionWindow.model_validate(
        {"start": "2025-02-01T08:00:00Z", "end": "2025-02-01T12:00:00+00:00"}
    )
    assert window.end - window.start == timedelta(hours=4)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("Drill Hall A", {"kind": "label", "label": "Drill Hall A"}),
        (
            {"name": "Sgt. Cruz", "detail": "Signals"},
            {"kind": "structured", "name": "Sgt. Cruz", "detail": "Signals"},
        ),
        ({"name": "Range 3"}, {"kind": "structured", "name": "Range 3", "detail": ""}),
        ({"label": "Gym"}, {"kind": "label", "label": "Gym"}),
    ],
)
def test_normalize_placement(raw, expected) -> None:
    assert normalize_placement(raw) == expected


@pytest.mark.parametrize("raw", ["", "   "])
def test_blank_placement_is_rejected(raw) -> None:
    with pytest.raises(ValueError, match="blank"):
        normalize_placement(raw)
    with pytest.raises(PydanticValidationError):
        UpdateSession.model_validate({"location": raw})


def test_create_command_normalizes_polymorphic_fields() -> None:
    command = CreateSession.model_validate(
        session_spec(
            location="Drill Hall A",
            instructor={"name": "Sgt. Cruz", "detail": "Signals"},
            tags="field, navigation ,,",
        )
    )
    assert command.location == LabelPlacement(label="Drill Hall A")
    assert command.instructor == StructuredPlacement(name="Sgt. Cruz", detail="Signals")
    assert command.instructor.display() == "Sgt. Cruz (Signals)"
    assert command.tags == frozenset({"field", "navigation"})


def test_create_command_rejects_zero_capacity() -> None:
    with pytest.raises(PydanticValidationError):
        CreateSession.model_validate(session_spec(capacity=0))


def test_create_command_rejects_malformed_placement() -> None:
    with pytest.raises(PydanticValidationError):
        CreateSession.model_validate(session_spec(location=42))


def test_update_command_tracks_only_given_fields() -> None:
    patch = UpdateSession.model_validate({"capacity": 12, "location": None})
    assert patch.changes() == {"capacity": 12, "location": None}
    assert UpdateSession().changes() == {}


@pytest.mark.parametrize("command_type", [CreateSession, UpdateSession])
def test_commands_reject_unknown_keys(command_type) -> None:
    with pytest.raises(PydanticValidationError, match="capacityy"):
        command_type.model_validate({**session_spec(), "capacityy": 1})


def test_update_command_accepts_window_mapping() -> None:
    start = T0 + timedelta(days=1)

    patch = UpdateSession.model_validate({"window": {"start": start, "end": start + timedelta(hours=2)}})
    assert patch.changes() == {"start": start, "end": start + timedelta(hours=2)}

    only_end = UpdateSession.model_validate({"window": {"end": start}})
    assert only_end.changes() == {"end": start}

    whole = UpdateSession.model_validate(
        {"window": SessionWindow(start=start, end=start + timedelta(hours=1))}
    )
    assert whole.changes()["end"] == start + timedelta(hours=1)


@pytest.mark.parametrize(
    "patch",
    [
        {"window": {"start": T0, "finish": T0}},
        {"window": "tomorrow"},
        {"window": {"start": T0}, "start": T0},
    ],
)
def test_update_command_rejects_malformed_window(patch) -> None:
    with pytest.raises(PydanticValidationError):
        UpdateSession.model_validate(patch)
