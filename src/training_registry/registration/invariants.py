"""
Registration Invariants - admission rules for a register call

Each rule is a pure check over state the registration service read inside its
write transaction. The order the service applies them in is the order callers
see failures in: unknown session, closed window, duplicate, full.
"""

from datetime import datetime

from training_registry.kernel.errors import (
    AlreadyRegisteredError,
    CapacityExceededError,
    ValidationError,
    WindowClosedError,
)
from training_registry.registration.lifecycle import session_status
from training_registry.registration.models import AttendanceOutcome, RegistrationEntry
from training_registry.sessions.models import Session, SessionStatus


def validate_registration_window(session: Session, now: datetime) -> None:
    """
    Registration is open while the session is upcoming or ongoing

    Raises:
        WindowClosedError: If the session has already ended
    """
    status = session_status(session, now)
    if status == SessionStatus.COMPLETED:
        raise WindowClosedError(session.session_id, status.value, session.window.end)


def validate_not_already_registered(
    session_id: str, participant_id: str, active: RegistrationEntry | None
) -> None:
    """
    Raises:
        AlreadyRegisteredError: If the pair already holds an active entry
    """
    if active is not None:
        raise AlreadyRegisteredError(
            session_id, participant_id, active.entry_id, active.registered_at
        )


def validate_capacity_available(session: Session, active_count: int) -> None:
    """
    A new entry needs active_count < capacity

    active_count must come from the ledger, never from the cached counter.

    Raises:
        CapacityExceededError: If the session is full
    """
    if active_count >= session.capacity:
        raise CapacityExceededError(session.session_id, session.capacity, active_count)


def parse_attendance_outcome(outcome: AttendanceOutcome | str) -> AttendanceOutcome:
    try:
        return AttendanceOutcome(outcome)
    except ValueError as e:
        allowed = ", ".join(o.value for o in AttendanceOutcome)
        raise ValidationError(
            f"Invalid attendance outcome {outcome!r} (expected one of: {allowed})",
            [{"field": "outcome", "message": f"must be one of {allowed}"}],
        ) from e


def validate_performance_score(score: float | None) -> None:
    """
    Raises:
        ValidationError: If a score is given outside 0-100
    """
    if score is not None and not 0 <= score <= 100:
        raise ValidationError(
            f"Invalid performance score {score} (expected 0-100)",
            [{"field": "performance_score", "message": "must be between 0 and 100"}],
        )
