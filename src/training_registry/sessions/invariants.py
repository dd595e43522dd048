"""
Session Invariants - structural rules of a session definition

Pure functions: they take the current definition and the requested change and
either return the new definition or raise. No store access happens here; the
caller supplies the active registration count read inside its transaction.
"""

from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from training_registry.kernel.errors import CapacityConflictError, ValidationError
from training_registry.sessions.models import Session

# Fields a patch may set but never clear
NON_NULLABLE_FIELDS = {"title", "description", "category", "start", "end", "capacity", "mandatory", "tags"}


def validation_error_from(exc: PydanticValidationError, context: str) -> ValidationError:
    """Translate a pydantic validation failure into the registry's ValidationError"""
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    summary = "; ".join(f"{e['field'] or context}: {e['message']}" for e in errors)
    return ValidationError(f"Invalid {context}: {summary}", errors)


def validate_capacity_not_below_active(
    session_id: str, new_capacity: int, active_count: int
) -> None:
    """
    Capacity may never be reduced below the current active registration count

    Raises:
        CapacityConflictError: If new_capacity < active_count
    """
    if new_capacity < active_count:
        raise CapacityConflictError(session_id, new_capacity, active_count)


def apply_session_changes(
    session: Session, changes: dict[str, Any], now: datetime
) -> Session:
    """
    Build the updated session definition from a patch

    start/end are merged with the current window before validation, so moving
    only one bound is checked against the other. registered_count and
    created_at are carried over untouched.

    Raises:
        ValidationError: If a non-clearable field is set to None or the merged
            definition is invalid (e.g., start >= end)
    """
    cleared = sorted(name for name in NON_NULLABLE_FIELDS if name in changes and changes[name] is None)
    if cleared:
        raise ValidationError(
            f"Invalid session update: {', '.join(cleared)} cannot be cleared",
            [{"field": name, "message": "cannot be null"} for name in cleared],
        )

    data = session.model_dump()
    window = dict(data["window"])
    for name, value in changes.items():
        if name in ("start", "end"):
            window[name] = value
        else:
            data[name] = value
    data["window"] = window
    data["updated_at"] = now

    try:
        return Session.model_validate(data)
    except PydanticValidationError as e:
        raise validation_error_from(e, "session update") from e


def diff_sessions(before: Session, after: Session) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Field-level difference between two definitions, JSON-ready

    Returns:
        (changes, previous) keyed by field name
    """
    old = before.model_dump(mode="json", exclude={"registered_count", "updated_at"})
    new = after.model_dump(mode="json", exclude={"registered_count", "updated_at"})
    old["tags"] = sorted(old["tags"])
    new["tags"] = sorted(new["tags"])
    changes = {k: v for k, v in new.items() if old.get(k) != v}
    previous = {k: old.get(k) for k in changes}
    return changes, previous
