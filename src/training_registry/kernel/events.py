"""
Audit event model

Every write to a session or its registrations is recorded as an immutable
event on the session's stream. The event log is an audit trail: current state
lives in the session and registration tables, and the log lets operators see
how it got there.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Immutable fact about a session or one of its registrations

    stream_id + version form a per-session sequence; the unique constraint on
    the pair rejects two writers that raced past each other.
    """

    event_id: str = Field(..., description="Unique event identifier")

    stream_id: str = Field(..., description="Session the event belongs to")

    stream_type: str = Field(default="session")

    event_type: str = Field(
        ...,
        description="'SessionCreated', 'ParticipantRegistered', 'RegistrationCancelled', ...",
    )

    occurred_at: datetime = Field(..., description="UTC timestamp of the change")

    actor_id: str | None = Field(
        default=None,
        description="Caller identity that triggered the change (None for system)",
    )

    payload: dict = Field(default_factory=dict)

    version: int = Field(..., ge=1, description="Stream version after this event")

    model_config = {"frozen": True}


def create_event(
    *,
    event_id: str,
    stream_id: str,
    event_type: str,
    occurred_at: datetime,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Construct a session-stream event with named parameters"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        payload=payload or {},
        version=version,
    )
