"""
Registration Module - enrollment ledger and lifecycle

State machine per (session, participant):
    not_registered --register--> registered
    registered     --cancel----> cancelled
    cancelled      --register--> registered   (new entry)
    registered     --attendance-> completed | absent
"""

from training_registry.registration.lifecycle import (
    display_registration_status,
    latest_entry,
    session_status,
    window_status,
)
from training_registry.registration.models import (
    AttendanceOutcome,
    DisplayRegistrationStatus,
    RegistrationEntry,
    StoredStatus,
)

__all__ = [
    "RegistrationEntry",
    "StoredStatus",
    "AttendanceOutcome",
    "DisplayRegistrationStatus",
    "window_status",
    "session_status",
    "display_registration_status",
    "latest_entry",
]
