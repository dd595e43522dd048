"""
Tests for personnel directory resolution
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from training_registry.kernel.time import TestTimeProvider
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.registration.service import RegistrationService
from training_registry.roster.models import PersonnelProjection
from training_registry.roster.personnel import (
    InMemoryPersonnelDirectory,
    fallback_projection,
    resolve_personnel,
)
from training_registry.roster.queries import RosterQueryService
from training_registry.sessions.service import SessionAdministrationService
from training_registry.sessions.store import SQLiteSessionStore
from tests.helpers import session_spec


class BrokenDirectory:
    """Directory whose backend is down for some participants"""

    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.known = InMemoryPersonnelDirectory(
            {"p-ok": {"rank": "LT", "full_name": "Dana Cruz", "company": "HQ"}}
        )

    def lookup(self, participant_id: str) -> PersonnelProjection | None:
        if participant_id in self.failing:
            raise ConnectionError("directory unavailable")
        return self.known.lookup(participant_id)


def test_fallback_uses_id_prefix() -> None:
    assert fallback_projection("p-1234567").full_name == "User p-1234"
    assert fallback_projection("abc").full_name == "User abc"


def test_resolve_known_and_unknown(personnel_directory: InMemoryPersonnelDirectory) -> None:
    resolved = resolve_personnel(personnel_directory, ["p-alice", "p-ghost", "p-alice"])

    assert set(resolved) == {"p-alice", "p-ghost"}
    assert resolved["p-alice"].company == "Alpha Company"
    assert resolved["p-ghost"] == fallback_projection("p-ghost")


def test_resolve_without_directory() -> None:
    resolved = resolve_personnel(None, ["p-1"])
    assert resolved["p-1"].full_name == "User p-1"


def test_failing_lookup_falls_back() -> None:
    directory = BrokenDirectory(failing={"p-down"})

    resolved = resolve_personnel(directory, ["p-ok", "p-down"])

    assert resolved["p-ok"].full_name == "Dana Cruz"
    assert resolved["p-down"].full_name == "User p-down"


def test_roster_survives_directory_outage(
    session_service: SessionAdministrationService,
    registration_service: RegistrationService,
    session_store: SQLiteSessionStore,
    ledger: SQLiteRegistrationLedger,
    test_time: TestTimeProvider,
) -> None:
    session = session_service.create_session(session_spec())
    registration_service.register(session.session_id, "p-ok")
    registration_service.register(session.session_id, "p-down")
    roster = RosterQueryService(
        session_store, ledger, test_time, BrokenDirectory(failing={"p-down"})
    )

    rows = {row.participant_id: row for row in roster.full_roster(session.session_id)}

    assert rows["p-ok"].personnel.rank == "LT"
    assert rows["p-down"].personnel.full_name == "User p-down"


def test_directory_from_json_file(tmp_path: Path) -> None:
    path = tmp_path / "personnel.json"
    path.write_text(
        json.dumps({"p-7": {"rank": "MAJ", "full_name": "Eve Tan", "company": "HQ", "email": "eve@example.org"}})
    )

    directory = InMemoryPersonnelDirectory.from_json_file(path)

    assert directory.lookup("p-7") == PersonnelProjection(
        rank="MAJ", full_name="Eve Tan", company="HQ", email="eve@example.org"
    )
    assert directory.lookup("p-8") is None


def test_directory_rejects_malformed_record() -> None:
    with pytest.raises(PydanticValidationError):
        InMemoryPersonnelDirectory({"p-1": {"rank": ["not", "a", "string"]}})


def test_directory_file_must_hold_an_object(tmp_path: Path) -> None:
    path = tmp_path / "personnel.json"
    path.write_text(json.dumps(["p-7"]))

    with pytest.raises(ValueError, match="JSON object"):
        InMemoryPersonnelDirectory.from_json_file(path)
