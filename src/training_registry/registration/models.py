"""
Registration Domain Models

Stored status vs display status:
- StoredStatus is what the ledger records for an entry.
- DisplayRegistrationStatus is derived on read by the lifecycle engine from
  the stored status, the session window and the current time.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class StoredStatus(str, Enum):
    """
    Status stored on a registration entry

    Transitions:
        registered -> cancelled                (cancel)
        registered -> completed | absent       (attendance recording)
    A cancelled participant re-registers with a new entry.
    """

    REGISTERED = "registered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    ABSENT = "absent"

    @classmethod
    def _missing_(cls, value: object) -> "StoredStatus | None":
        # Older attendance markings were stored as "attended"
        if isinstance(value, str) and value.lower() == "attended":
            return cls.COMPLETED
        return None


class AttendanceOutcome(str, Enum):
    """Terminal outcome recorded by attendance marking"""

    COMPLETED = "completed"
    ABSENT = "absent"


class DisplayRegistrationStatus(str, Enum):
    """Registration status as presented to callers (never stored)"""

    NOT_REGISTERED = "not_registered"
    REGISTERED = "registered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RegistrationEntry(BaseModel):
    """
    One participant's enrollment in one session

    At most one entry per (session_id, participant_id) may have status
    REGISTERED at any time. History is kept: re-registering after a
    cancellation adds a new entry instead of reviving the old one.

    Attributes:
        entry_id: Unique entry identifier
        session_id: Session enrolled in
        participant_id: Opaque participant identifier
        status: Stored status
        registered_at: When the entry was created
        status_changed_at: Last status transition (== registered_at on creation)
        completed_at: When attendance was recorded, if it was
        performance_score: Optional score recorded with attendance (0-100)
    """

    entry_id: str
    session_id: str
    participant_id: str
    status: StoredStatus
    registered_at: datetime
    status_changed_at: datetime
    completed_at: datetime | None = None
    performance_score: float | None = Field(default=None, ge=0, le=100)

    model_config = {"frozen": True}

    def is_active(self) -> bool:
        return self.status == StoredStatus.REGISTERED
