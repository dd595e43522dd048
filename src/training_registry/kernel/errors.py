"""
Error hierarchy for the training registry

Every failure mode of the session and registration operations has its own
exception type so callers (the admin UI, the CLI) can surface each one
distinctly. Business rejections carry enough context for the caller to decide
whether to retry, pick another session, or do nothing.
"""

from datetime import datetime
from typing import Any


class RegistryError(Exception):
    """Base exception for all training registry errors"""

    pass


class ValidationError(RegistryError):
    """
    Raised when a session definition or request is malformed

    Rejected synchronously at the boundary; nothing is persisted.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(RegistryError):
    """Base class for unknown sessions or registrations"""

    pass


class SessionNotFound(NotFoundError):
    """Raised when a session does not exist"""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class RegistrationNotFound(NotFoundError):
    """Raised when a participant holds no active registration for a session"""

    def __init__(self, session_id: str, participant_id: str) -> None:
        self.session_id = session_id
        self.participant_id = participant_id
        super().__init__(
            f"No active registration for participant {participant_id} "
            f"in session {session_id}"
        )


class WindowClosedError(RegistryError):
    """Raised when registering into a session that has already ended"""

    def __init__(self, session_id: str, current_status: str, ended_at: datetime) -> None:
        self.session_id = session_id
        self.current_status = current_status
        self.ended_at = ended_at
        super().__init__(
            f"Session {session_id} is {current_status} (ended {ended_at.isoformat()}) - "
            "registration window is closed"
        )


class AlreadyRegisteredError(RegistryError):
    """Raised when the participant already holds an active registration"""

    def __init__(
        self,
        session_id: str,
        participant_id: str,
        entry_id: str | None = None,
        registered_at: datetime | None = None,
    ) -> None:
        self.session_id = session_id
        self.participant_id = participant_id
        self.entry_id = entry_id
        self.registered_at = registered_at
        super().__init__(
            f"Participant {participant_id} is already registered for session {session_id}"
        )


class CapacityExceededError(RegistryError):
    """Raised when a session has no free slot at the instant of commit"""

    def __init__(self, session_id: str, capacity: int, registered_count: int) -> None:
        self.session_id = session_id
        self.capacity = capacity
        self.registered_count = registered_count
        super().__init__(
            f"Session {session_id} is full ({registered_count}/{capacity} registered)"
        )


class CapacityConflictError(RegistryError):
    """
    Raised when an update would reduce capacity below the active count

    Never auto-resolved: the operator must keep capacity at or above the
    number of active registrations.
    """

    def __init__(self, session_id: str, requested_capacity: int, active_count: int) -> None:
        self.session_id = session_id
        self.requested_capacity = requested_capacity
        self.active_count = active_count
        super().__init__(
            f"Cannot set capacity of session {session_id} to {requested_capacity}: "
            f"{active_count} participants are actively registered"
        )


class StoreError(RegistryError):
    """Raised on non-transient storage failures"""

    pass


class RetryableError(StoreError):
    """
    Raised when a write hit a transient conflict (lock timeout, busy database)

    The engine does not retry writes itself; callers retry the whole operation
    so that capacity is re-checked.
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} hit a transient store conflict: {reason}")


class LateCancellationWarning(UserWarning):
    """
    Issued when a registration is cancelled after its session ended

    Non-fatal: the cancellation is applied as a historical correction.
    """

    def __init__(self, session_id: str, participant_id: str) -> None:
        self.session_id = session_id
        self.participant_id = participant_id
        super().__init__(
            f"Registration of {participant_id} cancelled after session {session_id} ended"
        )


class StreamVersionConflict(RetryableError):
    """Raised when a session's audit stream moved under a concurrent writer"""

    def __init__(self, stream_id: str, expected_version: int, actual_version: int) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            "append_events",
            f"stream {stream_id} expected version {expected_version}, got {actual_version}",
        )
