"""
Test Helper Functions - Builders and Assertions

Builders lay session windows out relative to the pinned test clock
(2025-01-15 12:00 UTC), so a test reads as "starts in an hour, lasts two".
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from training_registry.kernel.database import SQLiteDatabase
from training_registry.registration.models import RegistrationEntry, StoredStatus

T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def session_spec(
    title: str = "Land Navigation",
    starts_in: timedelta = timedelta(hours=1),
    duration: timedelta = timedelta(hours=2),
    capacity: int = 10,
    now: datetime = T0,
    **overrides: Any,
) -> dict[str, Any]:
    """
    Builder for a raw session definition

    Args:
        title: Session title
        starts_in: Offset of the window start from now
        duration: Window length
        capacity: Maximum active registrations
        now: Reference instant (defaults to the pinned test clock)
        **overrides: Any other CreateSession field

    Example:
        >>> spec = session_spec(capacity=2, location="Drill Hall A")
        >>> spec["window"]["end"] - spec["window"]["start"]
        datetime.timedelta(seconds=7200)
    """
    start = now + starts_in
    spec: dict[str, Any] = {
        "title": title,
        "window": {"start": start, "end": start + duration},
        "capacity": capacity,
    }
    spec.update(overrides)
    return spec


def make_entry(
    session_id: str,
    participant_id: str,
    status: StoredStatus = StoredStatus.REGISTERED,
    registered_at: datetime = T0,
    status_changed_at: datetime | None = None,
    entry_id: str | None = None,
    **fields: Any,
) -> RegistrationEntry:
    """Builder for ledger entries used by lifecycle and defect-seeding tests"""
    return RegistrationEntry(
        entry_id=entry_id or f"reg-{session_id}-{participant_id}-{registered_at.isoformat()}",
        session_id=session_id,
        participant_id=participant_id,
        status=status,
        registered_at=registered_at,
        status_changed_at=status_changed_at or registered_at,
        **fields,
    )


def drop_active_registration_index(database: SQLiteDatabase) -> None:
    """
    Remove the partial unique index so tests can seed ledger defects

    Simulates data written by an older or external writer that did not
    enforce the one-active-entry rule.
    """
    with database.connect() as conn:
        conn.execute("DROP INDEX IF EXISTS uq_active_registration")


def corrupt_registered_count(database: SQLiteDatabase, session_id: str, value: int) -> None:
    """Overwrite the cached counter to simulate drift"""
    with database.connect() as conn:
        conn.execute(
            "UPDATE sessions SET registered_count = ? WHERE session_id = ?",
            (value, session_id),
        )


def count_rows(database: SQLiteDatabase, sql: str, params: tuple = ()) -> int:
    with database.connect() as conn:
        return conn.execute(sql, params).fetchone()[0]
