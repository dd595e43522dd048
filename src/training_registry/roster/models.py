"""
Roster Models - query inputs and report rows

Rows are plain records. Rendering to CSV/PDF/HTML happens outside the
registry; formatters receive these models (or their model_dump form).
"""

import math
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from training_registry.registration.models import DisplayRegistrationStatus, StoredStatus
from training_registry.sessions.models import SessionStatus

T = TypeVar("T")


class PersonnelProjection(BaseModel):
    """Display fields supplied by the personnel directory for one participant"""

    rank: str = ""
    full_name: str = ""
    company: str = ""
    email: str = ""

    model_config = {"frozen": True}


class RosterFilter(BaseModel):
    """
    Roster query filter; every field is optional and they combine with AND

    Attributes:
        search: Case-insensitive substring matched against the participant's
            full name, participant id and email
        session_id: Only rows for this session
        company: Only participants of this company (case-insensitive equality)
        status: Only rows with this display registration status
    """

    search: str | None = None
    session_id: str | None = None
    company: str | None = None
    status: DisplayRegistrationStatus | None = None

    model_config = {"frozen": True}


class PageRequest(BaseModel):
    """Offset pagination request; numbers are 1-based"""

    number: int = Field(default=1, ge=1)
    size: int | None = Field(default=None, ge=1)

    model_config = {"frozen": True}


class Page(BaseModel, Generic[T]):
    """
    One page of a query result

    number is the page actually served, which differs from the requested
    number when the request was clamped to the last page.
    """

    rows: list[T]
    number: int
    size: int
    total_count: int
    total_pages: int


def total_pages_for(total_count: int, size: int) -> int:
    """Page count; an empty result still has one (empty) page"""
    return max(1, math.ceil(total_count / size))


class RosterRow(BaseModel):
    """Registration entry joined with its derived status and personnel display fields"""

    entry_id: str
    session_id: str
    session_title: str
    participant_id: str
    stored_status: StoredStatus
    status: DisplayRegistrationStatus
    registered_at: datetime
    status_changed_at: datetime
    completed_at: datetime | None = None
    performance_score: float | None = None
    personnel: PersonnelProjection

    model_config = {"frozen": True}


class CatalogView(str, Enum):
    """Which sessions a participant's catalog shows"""

    ALL = "all"
    UPCOMING = "upcoming"
    REGISTERED = "registered"
    PAST = "past"


class CatalogItem(BaseModel):
    """A session as seen by one participant"""

    session_id: str
    title: str
    category: str
    start: datetime
    end: datetime
    location: str | None = None
    instructor: str | None = None
    mandatory: bool = False
    session_status: SessionStatus
    registration_status: DisplayRegistrationStatus
    registered_count: int
    capacity: int
    available_slots: int

    model_config = {"frozen": True}


class HistoryItem(BaseModel):
    """A session the participant completed"""

    session_id: str
    title: str
    category: str
    start: datetime
    end: datetime
    completed_at: datetime
    performance_score: float | None = None

    model_config = {"frozen": True}
