"""
Personnel directory contract

The registry stores participants as opaque ids. Display fields come from an
external directory, which may not know a participant or may be down; rosters
are still served in both cases, with a placeholder projection.
"""

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from training_registry.kernel.logging import get_logger
from training_registry.roster.models import PersonnelProjection

logger = get_logger(__name__)


class PersonnelDirectory(Protocol):
    """Lookup of participant display fields"""

    def lookup(self, participant_id: str) -> PersonnelProjection | None:
        """Return the projection, or None if the participant is unknown"""
        ...


class InMemoryPersonnelDirectory:
    """Directory backed by a dict; used by the CLI and tests"""

    def __init__(self, records: Mapping[str, PersonnelProjection | Mapping] | None = None) -> None:
        self._records: dict[str, PersonnelProjection] = {}
        for participant_id, record in (records or {}).items():
            self.add(participant_id, record)

    def add(self, participant_id: str, record: PersonnelProjection | Mapping) -> None:
        if not isinstance(record, PersonnelProjection):
            record = PersonnelProjection.model_validate(
                dict(record) if isinstance(record, Mapping) else record
            )
        self._records[participant_id] = record

    def lookup(self, participant_id: str) -> PersonnelProjection | None:
        return self._records.get(participant_id)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryPersonnelDirectory":
        """
        Load a {participant_id: {rank, full_name, company, email}} JSON file
        """
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, dict):
            raise ValueError("personnel file must hold a JSON object keyed by participant id")
        return cls(records)


def fallback_projection(participant_id: str) -> PersonnelProjection:
    """Placeholder shown for participants the directory cannot resolve"""
    return PersonnelProjection(full_name=f"User {participant_id[:6]}")


def resolve_personnel(
    directory: PersonnelDirectory | None,
    participant_ids: Iterable[str],
) -> dict[str, PersonnelProjection]:
    """
    Look up display fields for each participant, never failing

    Unknown participants get the fallback projection. A directory error is
    logged and also answered with the fallback, so one bad lookup never
    breaks a roster.
    """
    resolved: dict[str, PersonnelProjection] = {}
    for participant_id in participant_ids:
        if participant_id in resolved:
            continue
        projection = None
        if directory is not None:
            try:
                projection = directory.lookup(participant_id)
            except Exception:
                logger.warning(
                    "Personnel lookup failed, using placeholder",
                    participant_id=participant_id,
                    exc_info=True,
                )
        resolved[participant_id] = projection or fallback_projection(participant_id)
    return resolved
