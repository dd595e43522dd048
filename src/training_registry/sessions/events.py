"""
Session Events - audit payloads for session definition changes
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SessionCreated(BaseModel):
    """A session was defined with zero active registrations"""

    session_id: str
    title: str
    start: datetime
    end: datetime
    capacity: int
    created_at: datetime
    created_by: str | None


class SessionUpdated(BaseModel):
    """
    A session definition changed

    changes holds the new value of every field the update touched;
    previous holds the values they replaced.
    """

    session_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    previous: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime
    updated_by: str | None
