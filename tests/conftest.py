"""
Pytest configuration and shared fixtures

Every fixture builds on one temporary SQLite file, so services created in the
same test share state exactly as they would in production.

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.event_store import SQLiteEventStore
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.time import TestTimeProvider
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.registration.service import RegistrationService
from training_registry.registry import TrainingRegistry
from training_registry.roster.models import PersonnelProjection
from training_registry.roster.personnel import InMemoryPersonnelDirectory
from training_registry.roster.queries import RosterQueryService
from training_registry.sessions.service import SessionAdministrationService
from training_registry.sessions.store import SQLiteSessionStore


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves -wal/-shm companions)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC. Session windows in tests are laid
    out relative to this instant (see tests/helpers.py).
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> RegistrationPolicy:
    """Default policy with a short lock wait so contention tests stay fast"""
    return RegistrationPolicy(busy_timeout_seconds=5.0)


@pytest.fixture
def database(temp_db: Path, policy: RegistrationPolicy) -> SQLiteDatabase:
    return SQLiteDatabase(temp_db, policy.busy_timeout_seconds)


@pytest.fixture
def event_store(database: SQLiteDatabase, policy: RegistrationPolicy) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(database, policy)


@pytest.fixture
def session_store(database: SQLiteDatabase, policy: RegistrationPolicy) -> SQLiteSessionStore:
    return SQLiteSessionStore(database, policy)


@pytest.fixture
def ledger(database: SQLiteDatabase, policy: RegistrationPolicy) -> SQLiteRegistrationLedger:
    return SQLiteRegistrationLedger(database, policy)


@pytest.fixture
def session_service(
    database: SQLiteDatabase,
    session_store: SQLiteSessionStore,
    ledger: SQLiteRegistrationLedger,
    event_store: SQLiteEventStore,
    test_time: TestTimeProvider,
) -> SessionAdministrationService:
    return SessionAdministrationService(database, session_store, ledger, event_store, test_time)


@pytest.fixture
def registration_service(
    database: SQLiteDatabase,
    session_store: SQLiteSessionStore,
    ledger: SQLiteRegistrationLedger,
    event_store: SQLiteEventStore,
    test_time: TestTimeProvider,
    policy: RegistrationPolicy,
) -> RegistrationService:
    return RegistrationService(database, session_store, ledger, event_store, test_time, policy)


@pytest.fixture
def personnel_directory() -> InMemoryPersonnelDirectory:
    """
    Directory with three known participants

    p-alice and p-bob belong to Alpha Company, p-carol to Bravo Company.
    """
    return InMemoryPersonnelDirectory(
        {
            "p-alice": PersonnelProjection(
                rank="SGT", full_name="Alice Reyes", company="Alpha Company", email="alice@example.org"
            ),
            "p-bob": PersonnelProjection(
                rank="CPL", full_name="Bob Santos", company="Alpha Company", email="bob@example.org"
            ),
            "p-carol": PersonnelProjection(
                rank="PFC", full_name="Carol Lim", company="Bravo Company", email="carol@example.org"
            ),
        }
    )


@pytest.fixture
def roster_service(
    session_store: SQLiteSessionStore,
    ledger: SQLiteRegistrationLedger,
    test_time: TestTimeProvider,
    personnel_directory: InMemoryPersonnelDirectory,
    policy: RegistrationPolicy,
) -> RosterQueryService:
    return RosterQueryService(session_store, ledger, test_time, personnel_directory, policy)


@pytest.fixture
def registry(
    temp_db: Path,
    policy: RegistrationPolicy,
    test_time: TestTimeProvider,
    personnel_directory: InMemoryPersonnelDirectory,
) -> TrainingRegistry:
    """Fully wired façade over the temporary database"""
    return TrainingRegistry(
        temp_db,
        policy=policy,
        time_provider=test_time,
        personnel_directory=personnel_directory,
    )
