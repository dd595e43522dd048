"""
Sessions Module - training session definitions

- Session model with a validated window and normalized location/instructor
- Create/update commands parsed at the boundary
- Administration service, the only writer of session definitions
"""

from training_registry.sessions.commands import CreateSession, UpdateSession
from training_registry.sessions.models import (
    LabelPlacement,
    Session,
    SessionStatus,
    SessionSummary,
    SessionWindow,
    StructuredPlacement,
)

__all__ = [
    "Session",
    "SessionWindow",
    "SessionStatus",
    "SessionSummary",
    "LabelPlacement",
    "StructuredPlacement",
    "CreateSession",
    "UpdateSession",
]
