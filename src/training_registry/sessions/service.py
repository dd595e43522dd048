"""
Session Administration Service - define and change sessions

The only writer of a session's definition. An update counts the ledger inside
the same write transaction, so a concurrent registration cannot slip in
between the capacity-conflict check and the change. Every read hands back the
ledger's active count, repairing a drifted cached registered_count.
"""

from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.errors import RetryableError, SessionNotFound
from training_registry.kernel.event_store import SQLiteEventStore
from training_registry.kernel.events import Event
from training_registry.kernel.ids import new_session_id
from training_registry.kernel.logging import LogOperation, get_logger
from training_registry.kernel.metrics import registered_count_drift_total, track_operation
from training_registry.kernel.time import TimeProvider, current_time
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.sessions.commands import CreateSession, UpdateSession
from training_registry.sessions.events import SessionCreated, SessionUpdated
from training_registry.sessions.invariants import (
    apply_session_changes,
    diff_sessions,
    validate_capacity_not_below_active,
    validation_error_from,
)
from training_registry.sessions.models import Session
from training_registry.sessions.store import SQLiteSessionStore

logger = get_logger(__name__)


def _report_drift(session: Session, actual: int) -> None:
    registered_count_drift_total.inc()
    logger.warning(
        "Cached registered count drifted from ledger",
        session_id=session.session_id,
        cached=session.registered_count,
        actual=actual,
    )


def reconcile_registered_count(
    database: SQLiteDatabase,
    session_store: SQLiteSessionStore,
    ledger: SQLiteRegistrationLedger,
    session: Session,
    active_count: int,
) -> Session:
    """
    Return the session carrying the ledger's active count

    A cached registered_count that disagrees is rewritten from a fresh ledger
    count. If the repair cannot take the write lock, the returned session still
    carries the ledger count and the next read retries the repair.
    """
    if active_count == session.registered_count:
        return session

    _report_drift(session, active_count)
    try:
        with database.write_transaction("repair_registered_count") as conn:
            session_store.set_registered_count(
                conn, session.session_id, ledger.count_active_in(conn, session.session_id)
            )
    except RetryableError as e:
        logger.warning(
            "Registered count repair deferred",
            session_id=session.session_id,
            reason=e.reason,
        )
    return session.model_copy(update={"registered_count": active_count})


class SessionAdministrationService:
    """Create, update and look up session definitions"""

    def __init__(
        self,
        database: SQLiteDatabase,
        session_store: SQLiteSessionStore,
        ledger: SQLiteRegistrationLedger,
        event_store: SQLiteEventStore,
        time_provider: TimeProvider,
    ) -> None:
        self.database = database
        self.session_store = session_store
        self.ledger = ledger
        self.event_store = event_store
        self.time_provider = time_provider

    @track_operation("create_session")
    def create_session(
        self,
        definition: CreateSession | dict[str, Any],
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> Session:
        """
        Define a new session with zero active registrations

        Args:
            definition: CreateSession command or its raw mapping form
            now: Creation time (defaults to the clock)
            actor_id: Administrator identity, recorded on the audit event

        Raises:
            ValidationError: start >= end, capacity < 1, naive timestamps,
                malformed location/instructor
        """
        command = self._parse(CreateSession, definition, "session definition")
        now = current_time(self.time_provider, now)

        session = Session(
            session_id=new_session_id(),
            title=command.title,
            description=command.description,
            category=command.category,
            window=command.window,
            capacity=command.capacity,
            location=command.location,
            instructor=command.instructor,
            mandatory=command.mandatory,
            tags=command.tags,
            registered_count=0,
            created_at=now,
            updated_at=now,
        )

        with LogOperation(
            logger, "create_session", session_id=session.session_id, actor_id=actor_id
        ):
            with self.database.write_transaction("create_session") as conn:
                self.session_store.insert(conn, session)
                payload = SessionCreated(
                    session_id=session.session_id,
                    title=session.title,
                    start=session.window.start,
                    end=session.window.end,
                    capacity=session.capacity,
                    created_at=now,
                    created_by=actor_id,
                ).model_dump(mode="json")
                self.event_store.record(
                    conn, session.session_id, "SessionCreated", now, payload, actor_id
                )

        return session

    @track_operation("update_session")
    def update_session(
        self,
        session_id: str,
        patch: UpdateSession | dict[str, Any],
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> Session:
        """
        Apply a partial update to a session definition

        Statuses are always derived from the current window, so moving the
        window has no retroactive effect. An update that changes nothing
        writes nothing.

        Raises:
            ValidationError: Malformed patch or invalid merged definition
            SessionNotFound: Unknown session
            CapacityConflictError: New capacity below the active registration count
        """
        command = self._parse(UpdateSession, patch, "session update")
        now = current_time(self.time_provider, now)
        changes = command.changes()

        with LogOperation(
            logger,
            "update_session",
            session_id=session_id,
            fields=sorted(changes),
            actor_id=actor_id,
        ):
            with self.database.write_transaction("update_session") as conn:
                current = self.session_store.get_in(conn, session_id)
                if current is None:
                    raise SessionNotFound(session_id)

                active_count = self.ledger.count_active_in(conn, session_id)
                if active_count != current.registered_count:
                    _report_drift(current, active_count)
                    self.session_store.set_registered_count(conn, session_id, active_count)
                    current = current.model_copy(update={"registered_count": active_count})
                if not changes:
                    return current

                updated = apply_session_changes(current, changes, now)
                if "capacity" in changes:
                    validate_capacity_not_below_active(session_id, updated.capacity, active_count)

                changed, previous = diff_sessions(current, updated)
                if not changed:
                    return current

                self.session_store.update_definition(conn, updated)
                payload = SessionUpdated(
                    session_id=session_id,
                    changes=changed,
                    previous=previous,
                    updated_at=now,
                    updated_by=actor_id,
                ).model_dump(mode="json")
                self.event_store.record(conn, session_id, "SessionUpdated", now, payload, actor_id)

            return updated

    def get_session(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFound: Unknown session
        """
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return self._reconciled(session, self.ledger.count_active(session_id))

    def list_sessions(self) -> list[Session]:
        """All sessions ordered by window start"""
        active_counts = self.ledger.count_active_by_session()
        return [
            self._reconciled(session, active_counts.get(session.session_id, 0))
            for session in self.session_store.list_all()
        ]

    def _reconciled(self, session: Session, active_count: int) -> Session:
        return reconcile_registered_count(
            self.database, self.session_store, self.ledger, session, active_count
        )

    def session_history(self, session_id: str) -> list[Event]:
        """Audit trail of a session and its registrations, oldest first"""
        self.get_session(session_id)
        return self.event_store.load_stream(session_id)

    def _parse(self, command_type, value, context: str):
        if isinstance(value, command_type):
            return value
        try:
            return command_type.model_validate(value)
        except PydanticValidationError as e:
            raise validation_error_from(e, context) from e
