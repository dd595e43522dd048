"""
Lifecycle Engine - derived session and registration statuses

Pure, deterministic functions of stored data and the current time. Every
place that shows a status (single-session views, rosters, catalogs, the CLI)
calls these functions; nothing re-derives a status inline.
"""

from datetime import datetime

from training_registry.registration.models import (
    DisplayRegistrationStatus,
    RegistrationEntry,
    StoredStatus,
)
from training_registry.sessions.models import Session, SessionStatus, SessionWindow


def window_status(window: SessionWindow, now: datetime) -> SessionStatus:
    """
    Status of a window at a point in time

    now < start          -> UPCOMING
    start <= now <= end  -> ONGOING (both bounds inclusive)
    now > end            -> COMPLETED
    """
    if now < window.start:
        return SessionStatus.UPCOMING
    if now <= window.end:
        return SessionStatus.ONGOING
    return SessionStatus.COMPLETED


def session_status(session: Session, now: datetime) -> SessionStatus:
    """Derived status of a session, always computed from its current window"""
    return window_status(session.window, now)


def display_registration_status(
    entry: RegistrationEntry | None,
    session: Session,
    now: datetime,
) -> DisplayRegistrationStatus:
    """
    Registration status to present for an entry

    - no entry                      -> NOT_REGISTERED
    - cancelled                     -> CANCELLED
    - session not yet completed     -> REGISTERED (terminal markings are held
                                       back until the session has ended)
    - session completed             -> COMPLETED if the entry was marked
                                       completed, otherwise REGISTERED

    An absent marking therefore displays as REGISTERED; only a completed
    marking upgrades the display after the session ends.
    """
    if entry is None:
        return DisplayRegistrationStatus.NOT_REGISTERED

    if entry.status == StoredStatus.CANCELLED:
        return DisplayRegistrationStatus.CANCELLED

    if session_status(session, now) != SessionStatus.COMPLETED:
        return DisplayRegistrationStatus.REGISTERED

    if entry.status == StoredStatus.COMPLETED:
        return DisplayRegistrationStatus.COMPLETED

    return DisplayRegistrationStatus.REGISTERED


def latest_entry(entries: list[RegistrationEntry]) -> RegistrationEntry | None:
    """
    The entry that represents a participant's current standing in a session

    Picks the latest status_changed_at; ties go to the later registered_at,
    then to the higher entry_id, so the choice is stable across calls.
    """
    if not entries:
        return None
    return max(entries, key=lambda e: (e.status_changed_at, e.registered_at, e.entry_id))
