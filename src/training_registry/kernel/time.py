"""
Clock abstraction for deterministic lifecycle derivation

Session and registration statuses are functions of wall-clock time. Every
component receives "now" from a TimeProvider instead of reading the system
clock directly, so tests can pin time to window boundaries.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

from training_registry.kernel.errors import ValidationError


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze time and move it across session windows.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        """
        Initialize with optional fixed time

        Args:
            initial_time: Starting time (defaults to Unix epoch)
        """
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        """Set current time to specific value"""
        self._current_time = dt

    def advance(self, delta: timedelta) -> None:
        """Advance time by an arbitrary delta"""
        self._current_time += delta

    def advance_minutes(self, minutes: int) -> None:
        self.advance(timedelta(minutes=minutes))

    def advance_hours(self, hours: int) -> None:
        self.advance(timedelta(hours=hours))


def ensure_utc(value: datetime, field_name: str = "timestamp") -> datetime:
    """
    Normalize an aware datetime to UTC

    Raises:
        ValueError: If the datetime is naive (no tzinfo)
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{field_name} must be timezone-aware")
    return value.astimezone(timezone.utc)


def current_time(time_provider: TimeProvider, now: datetime | None = None) -> datetime:
    """
    Resolve the "now" of an operation

    Callers may pin now explicitly (tests, backfills); otherwise the injected
    provider is asked.

    Raises:
        ValidationError: If an explicit now is naive
    """
    value = time_provider.now() if now is None else now
    try:
        return ensure_utc(value, "now")
    except ValueError as e:
        raise ValidationError(str(e), [{"field": "now", "message": str(e)}]) from e
