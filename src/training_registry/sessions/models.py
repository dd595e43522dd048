"""
Session Domain Models

A session is a scheduled training event with a fixed window and a capacity.
Location and instructor arrive from callers either as a plain label or as a
structured name/detail pair; both are normalized to the Placement variant
when a command is parsed, and nothing downstream sees the raw form.
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from training_registry.kernel.time import ensure_utc


class SessionStatus(str, Enum):
    """
    Derived session status, a function of (window, now)

    Never stored; see registration.lifecycle.session_status.
    """

    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class LabelPlacement(BaseModel):
    """Location or instructor given as a single label"""

    kind: Literal["label"] = "label"
    label: str = Field(..., min_length=1, max_length=200)

    model_config = {"frozen": True}

    def display(self) -> str:
        return self.label


class StructuredPlacement(BaseModel):
    """Location or instructor given as a name plus detail (room, rank, unit...)"""

    kind: Literal["structured"] = "structured"
    name: str = Field(..., min_length=1, max_length=200)
    detail: str = Field(default="", max_length=500)

    model_config = {"frozen": True}

    def display(self) -> str:
        return f"{self.name} ({self.detail})" if self.detail else self.name


Placement = Annotated[
    Union[LabelPlacement, StructuredPlacement],
    Field(discriminator="kind"),
]


def normalize_placement(value: Any) -> Any:
    """
    Normalize raw location/instructor input to the tagged Placement form

    Accepts None, a plain string, a {name, detail} mapping, an already tagged
    mapping, or a Placement model. A blank string is rejected; clearing a
    field is done with None. Anything else is returned unchanged for pydantic
    to reject.

    Example:
        >>> normalize_placement("Drill Hall A")
        {'kind': 'label', 'label': 'Drill Hall A'}
        >>> normalize_placement({"name": "Sgt. Cruz", "detail": "Signals"})
        {'kind': 'structured', 'name': 'Sgt. Cruz', 'detail': 'Signals'}
    """
    if value is None or isinstance(value, (LabelPlacement, StructuredPlacement)):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("label must not be blank (use None to clear)")
        return {"kind": "label", "label": stripped}
    if isinstance(value, Mapping):
        if "kind" in value:
            return dict(value)
        if "name" in value:
            return {
                "kind": "structured",
                "name": value["name"],
                "detail": value.get("detail") or "",
            }
        if "label" in value:
            return {"kind": "label", "label": value["label"]}
    return value


class SessionWindow(BaseModel):
    """
    Time window of a session

    Invariant: start < end. Both bounds are UTC-aware.
    """

    start: datetime
    end: datetime

    model_config = {"frozen": True}

    @field_validator("start", "end")
    @classmethod
    def _aware_utc(cls, value: datetime, info: ValidationInfo) -> datetime:
        return ensure_utc(value, info.field_name)

    @model_validator(mode="after")
    def _start_before_end(self) -> "SessionWindow":
        if not self.start < self.end:
            raise ValueError("window start must be before window end")
        return self


class Session(BaseModel):
    """
    Stored training session

    registered_count is a cached counter maintained in the same transaction as
    ledger writes. It is an optimization only; the ledger's count of active
    entries is authoritative.

    Attributes:
        session_id: Immutable identifier
        title: Display title
        description: Free text
        category: Training type/category (free text)
        window: Scheduled start/end
        capacity: Maximum number of active registrations (>= 1)
        location: Normalized placement, or None
        instructor: Normalized placement, or None
        mandatory: Informational flag, no effect on the engine
        tags: Free-form labels
        registered_count: Cached active registration count
        created_at: Creation time
        updated_at: Last definition change
    """

    session_id: str
    title: str
    description: str = ""
    category: str = ""
    window: SessionWindow
    capacity: int = Field(ge=1)
    location: Placement | None = None
    instructor: Placement | None = None
    mandatory: bool = False
    tags: frozenset[str] = frozenset()
    registered_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}


class SessionSummary(BaseModel):
    """Session plus its derived status and authoritative occupancy"""

    session: Session
    status: SessionStatus
    registered_count: int
    available_slots: int
