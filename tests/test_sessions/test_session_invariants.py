"""
Tests for session invariants (pure functions)
"""

from datetime import timedelta

import pytest

from training_registry.kernel.errors import CapacityConflictError, ValidationError
from training_registry.sessions.invariants import (
    apply_session_changes,
    diff_sessions,
    validate_capacity_not_below_active,
)
from training_registry.sessions.models import LabelPlacement, Session, SessionWindow
from tests.helpers import T0


@pytest.fixture
def session() -> Session:
    return Session(
        session_id="ses-1",
        title="Land Navigation",
        window=SessionWindow(start=T0 + timedelta(hours=1), end=T0 + timedelta(hours=3)),
        capacity=10,
        location=LabelPlacement(label="Drill Hall A"),
        tags=frozenset({"field"}),
        registered_count=4,
        created_at=T0,
        updated_at=T0,
    )


def test_capacity_may_not_drop_below_active_count() -> None:
    validate_capacity_not_below_active("ses-1", 5, 5)

    with pytest.raises(CapacityConflictError) as exc_info:
        validate_capacity_not_below_active("ses-1", 3, 5)

    assert exc_info.value.requested_capacity == 3
    assert exc_info.value.active_count == 5


def test_moving_one_bound_is_checked_against_the_other(session: Session) -> None:
    later = T0 + timedelta(hours=2)
    updated = apply_session_changes(session, {"start": later}, T0)
    assert updated.window.start == later
    assert updated.window.end == session.window.end

    with pytest.raises(ValidationError, match="start must be before"):
        apply_session_changes(session, {"start": session.window.end}, T0)


def test_apply_changes_keeps_counter_and_creation_time(session: Session) -> None:
    now = T0 + timedelta(minutes=5)
    updated = apply_session_changes(session, {"title": "Night Navigation"}, now)
    assert updated.title == "Night Navigation"
    assert updated.registered_count == 4
    assert updated.created_at == T0
    assert updated.updated_at == now


def test_required_fields_cannot_be_cleared(session: Session) -> None:
    with pytest.raises(ValidationError) as exc_info:
        apply_session_changes(session, {"title": None, "capacity": None}, T0)
    assert {e["field"] for e in exc_info.value.errors} == {"capacity", "title"}


def test_location_can_be_cleared(session: Session) -> None:
    assert apply_session_changes(session, {"location": None}, T0).location is None


def test_diff_reports_only_changed_fields(session: Session) -> None:
    updated = apply_session_changes(
        session, {"capacity": 12, "tags": frozenset({"field"})}, T0 + timedelta(minutes=1)
    )
    changes, previous = diff_sessions(session, updated)
    assert changes == {"capacity": 12}
    assert previous == {"capacity": 10}
