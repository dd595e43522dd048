"""
Registration Events - audit payloads for ledger changes
"""

from datetime import datetime

from pydantic import BaseModel

from training_registry.registration.models import AttendanceOutcome


class ParticipantRegistered(BaseModel):
    """A new active entry was created; registered_count is the count after commit"""

    entry_id: str
    session_id: str
    participant_id: str
    registered_at: datetime
    registered_count: int
    capacity: int


class RegistrationCancelled(BaseModel):
    """
    An active entry moved to cancelled

    late is True when the session had already ended (historical correction).
    """

    entry_id: str
    session_id: str
    participant_id: str
    cancelled_at: datetime
    registered_count: int
    late: bool = False


class AttendanceRecorded(BaseModel):
    """An active entry was marked completed or absent"""

    entry_id: str
    session_id: str
    participant_id: str
    outcome: AttendanceOutcome
    recorded_at: datetime
    completed_at: datetime | None = None
    performance_score: float | None = None
