"""
Session Commands - intentions to define or change a session

Commands are parsed at the boundary. Raw location/instructor input is
normalized here, so a malformed definition is rejected before anything
touches the store.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from training_registry.kernel.time import ensure_utc
from training_registry.sessions.models import Placement, SessionWindow, normalize_placement


class CreateSession(BaseModel):
    """
    Define a new session

    Requirements:
    - start < end (checked by SessionWindow)
    - capacity >= 1
    """

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    category: str = Field(default="", max_length=100)
    window: SessionWindow
    capacity: int = Field(..., ge=1)
    location: Placement | None = None
    instructor: Placement | None = None
    mandatory: bool = False
    tags: frozenset[str] = frozenset()

    model_config = {"extra": "forbid"}

    @field_validator("location", "instructor", mode="before")
    @classmethod
    def _normalize_placement(cls, value: Any) -> Any:
        return normalize_placement(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(tag.strip() for tag in value if tag and tag.strip())


class UpdateSession(BaseModel):
    """
    Partial update of a session definition

    Only fields explicitly set on the command are applied (model_fields_set),
    so location/instructor can be cleared by passing None. start and end may
    be changed independently, or together as a window mapping; the merged
    window must still satisfy start < end. Unknown keys are rejected.
    Capacity may not drop below the current active registration count.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = Field(default=None, max_length=100)
    start: datetime | None = None
    end: datetime | None = None
    capacity: int | None = Field(default=None, ge=1)
    location: Placement | None = None
    instructor: Placement | None = None
    mandatory: bool | None = None
    tags: frozenset[str] | None = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _split_window(cls, data: Any) -> Any:
        # A window mapping (whole or partial) is applied as start/end changes
        if not isinstance(data, dict) or "window" not in data:
            return data
        data = dict(data)
        window = data.pop("window")
        if isinstance(window, SessionWindow):
            window = {"start": window.start, "end": window.end}
        if not isinstance(window, dict):
            raise ValueError("window must be a mapping with start and/or end")
        unknown = set(window) - {"start", "end"}
        if unknown:
            raise ValueError(f"window has unknown keys: {', '.join(sorted(unknown))}")
        for name, value in window.items():
            if name in data:
                raise ValueError(f"{name} given both directly and inside window")
            data[name] = value
        return data

    @field_validator("location", "instructor", mode="before")
    @classmethod
    def _normalize_placement(cls, value: Any) -> Any:
        return normalize_placement(value)

    @field_validator("start", "end")
    @classmethod
    def _aware_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(tag.strip() for tag in value if tag and tag.strip())

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller"""
        return {name: getattr(self, name) for name in self.model_fields_set}
