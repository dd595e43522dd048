"""
TrainingRegistry - Main façade class

The primary interface to the registry. It wires the stores and services over
one SQLite file and exposes every operation with plain arguments.

Example:
    >>> from training_registry import TrainingRegistry
    >>> registry = TrainingRegistry("training.db")
    >>> session = registry.create_session(
    ...     title="Land Navigation",
    ...     window={"start": "2025-02-01T08:00:00Z", "end": "2025-02-01T12:00:00Z"},
    ...     capacity=20,
    ...     location="Drill Hall A",
    ... )
    >>> registry.register(session.session_id, "p-1001")
    >>> page = registry.query_roster(RosterFilter(session_id=session.session_id))
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.event_store import SQLiteEventStore
from training_registry.kernel.events import Event
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.time import RealTimeProvider, TimeProvider, current_time
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.registration.lifecycle import session_status
from training_registry.registration.models import (
    AttendanceOutcome,
    DisplayRegistrationStatus,
    RegistrationEntry,
)
from training_registry.registration.service import RegistrationService
from training_registry.roster.models import (
    CatalogItem,
    CatalogView,
    HistoryItem,
    Page,
    PageRequest,
    RosterFilter,
    RosterRow,
)
from training_registry.roster.personnel import PersonnelDirectory
from training_registry.roster.queries import RosterQueryService
from training_registry.sessions.commands import CreateSession, UpdateSession
from training_registry.sessions.models import Session, SessionStatus, SessionSummary
from training_registry.sessions.service import SessionAdministrationService
from training_registry.sessions.store import SQLiteSessionStore


class TrainingRegistry:
    """
    Training registry main façade

    Provides a unified API for:
    - Session definition and updates
    - Registration, cancellation and attendance marking
    - Rosters, participant catalogs and history
    - The audit trail of every session
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: RegistrationPolicy | None = None,
        time_provider: TimeProvider | None = None,
        personnel_directory: PersonnelDirectory | None = None,
    ) -> None:
        """
        Initialize the registry

        Args:
            sqlite_path: Path to SQLite database (created if missing)
            policy: Registration policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            personnel_directory: Source of participant display fields
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or RegistrationPolicy()
        self.time_provider = time_provider or RealTimeProvider()

        # Storage
        self.database = SQLiteDatabase(self.sqlite_path, self.policy.busy_timeout_seconds)
        self.event_store = SQLiteEventStore(self.database, self.policy)
        self.session_store = SQLiteSessionStore(self.database, self.policy)
        self.ledger = SQLiteRegistrationLedger(self.database, self.policy)

        # Services
        self.sessions = SessionAdministrationService(
            self.database, self.session_store, self.ledger, self.event_store, self.time_provider
        )
        self.registrations = RegistrationService(
            self.database,
            self.session_store,
            self.ledger,
            self.event_store,
            self.time_provider,
            self.policy,
        )
        self.roster = RosterQueryService(
            self.session_store,
            self.ledger,
            self.time_provider,
            personnel_directory,
            self.policy,
        )

    # Session operations

    def create_session(
        self,
        definition: CreateSession | dict[str, Any] | None = None,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
        **fields: Any,
    ) -> Session:
        """
        Create a session from a command, a mapping, or keyword fields

        Raises:
            ValidationError: If the definition is malformed
        """
        return self.sessions.create_session(
            definition if definition is not None else fields, now=now, actor_id=actor_id
        )

    def update_session(
        self,
        session_id: str,
        patch: UpdateSession | dict[str, Any] | None = None,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
        **fields: Any,
    ) -> Session:
        """
        Apply a partial update; only the given fields change

        Raises:
            SessionNotFound, ValidationError, CapacityConflictError
        """
        return self.sessions.update_session(
            session_id, patch if patch is not None else fields, now=now, actor_id=actor_id
        )

    def get_session(self, session_id: str) -> Session:
        return self.sessions.get_session(session_id)

    def all_sessions(self) -> list[Session]:
        """All sessions ordered by window start"""
        return self.sessions.list_sessions()

    def session_status(self, session_id: str, now: datetime | None = None) -> SessionStatus:
        """Derived status of a session right now (or at now)"""
        session = self.sessions.get_session(session_id)
        return session_status(session, current_time(self.time_provider, now))

    def session_summary(self, session_id: str, now: datetime | None = None) -> SessionSummary:
        return self.registrations.session_summary(session_id, now)

    def session_history(self, session_id: str) -> list[Event]:
        """Audit trail of a session, oldest first"""
        return self.sessions.session_history(session_id)

    # Registration operations

    def register(
        self,
        session_id: str,
        participant_id: str,
        *,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        return self.registrations.register(session_id, participant_id, now, actor_id)

    def cancel(
        self,
        session_id: str,
        participant_id: str,
        *,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        return self.registrations.cancel(session_id, participant_id, now, actor_id)

    def record_attendance(
        self,
        session_id: str,
        participant_id: str,
        outcome: AttendanceOutcome | str,
        *,
        now: datetime | None = None,
        completed_at: datetime | None = None,
        performance_score: float | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        return self.registrations.record_attendance(
            session_id,
            participant_id,
            outcome,
            now=now,
            completed_at=completed_at,
            performance_score=performance_score,
            actor_id=actor_id,
        )

    def registration_status(
        self, session_id: str, participant_id: str, now: datetime | None = None
    ) -> DisplayRegistrationStatus:
        return self.registrations.registration_status(session_id, participant_id, now)

    def registration_history(self, session_id: str, participant_id: str) -> list[RegistrationEntry]:
        """Every entry the pair ever had, oldest first"""
        return self.registrations.registration_history(session_id, participant_id)

    def reconcile_registered_counts(self) -> dict[str, tuple[int, int]]:
        return self.registrations.reconcile_registered_counts()

    # Query operations

    def query_roster(
        self,
        roster_filter: RosterFilter | None = None,
        page: PageRequest | None = None,
        now: datetime | None = None,
    ) -> Page[RosterRow]:
        return self.roster.query_roster(roster_filter, page, now)

    def full_roster(self, session_id: str, now: datetime | None = None) -> list[RosterRow]:
        return self.roster.full_roster(session_id, now)

    def list_sessions(
        self,
        participant_id: str,
        view: CatalogView | str = CatalogView.ALL,
        now: datetime | None = None,
    ) -> list[CatalogItem]:
        return self.roster.session_catalog(participant_id, view, now)

    def participant_history(
        self, participant_id: str, now: datetime | None = None
    ) -> list[HistoryItem]:
        return self.roster.participant_history(participant_id, now)
