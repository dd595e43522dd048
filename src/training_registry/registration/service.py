"""
Registration Service - register, cancel and attendance marking

Every write runs inside one BEGIN IMMEDIATE transaction that:
1. Reads the session and the pair's active entry
2. Applies the admission rules (registration/invariants.py)
3. Counts active entries in the ledger and writes the entry
4. Stores the recounted registered_count and appends the audit event

Because the write lock is taken before the count is read, two registrations
racing for the last slot are serialized: one commits, the other sees the full
count and fails with CapacityExceededError. Lock timeouts surface as
RetryableError and are never retried here, so a retried register re-checks
capacity from scratch.
"""

import warnings
from datetime import datetime

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.errors import (
    AlreadyRegisteredError,
    CapacityExceededError,
    LateCancellationWarning,
    RegistrationNotFound,
    RetryableError,
    SessionNotFound,
    ValidationError,
    WindowClosedError,
)
from training_registry.kernel.event_store import SQLiteEventStore
from training_registry.kernel.ids import new_entry_id
from training_registry.kernel.logging import LogOperation, get_logger
from training_registry.kernel.metrics import (
    attendance_recorded_total,
    cancellations_total,
    registrations_total,
    track_operation,
)
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.time import TimeProvider, current_time, ensure_utc
from training_registry.registration.events import (
    AttendanceRecorded,
    ParticipantRegistered,
    RegistrationCancelled,
)
from training_registry.registration.invariants import (
    parse_attendance_outcome,
    validate_capacity_available,
    validate_not_already_registered,
    validate_performance_score,
    validate_registration_window,
)
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.registration.lifecycle import (
    display_registration_status,
    latest_entry,
    session_status,
)
from training_registry.registration.models import (
    AttendanceOutcome,
    DisplayRegistrationStatus,
    RegistrationEntry,
    StoredStatus,
)
from training_registry.sessions.models import Session, SessionStatus, SessionSummary
from training_registry.sessions.service import reconcile_registered_count
from training_registry.sessions.store import SQLiteSessionStore

logger = get_logger(__name__)

_REJECTION_OUTCOMES: list[tuple[type[Exception], str]] = [
    (SessionNotFound, "session_not_found"),
    (WindowClosedError, "window_closed"),
    (AlreadyRegisteredError, "already_registered"),
    (CapacityExceededError, "capacity_exceeded"),
    (RetryableError, "retryable"),
]


def _outcome_label(exc: Exception) -> str:
    for exc_type, label in _REJECTION_OUTCOMES:
        if isinstance(exc, exc_type):
            return label
    return "error"


class RegistrationService:
    """
    Sole writer of registration entries

    Holds no state of its own; any number of threads or processes may share
    one database file.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        session_store: SQLiteSessionStore,
        ledger: SQLiteRegistrationLedger,
        event_store: SQLiteEventStore,
        time_provider: TimeProvider,
        policy: RegistrationPolicy | None = None,
    ) -> None:
        self.database = database
        self.session_store = session_store
        self.ledger = ledger
        self.event_store = event_store
        self.time_provider = time_provider
        self.policy = policy or RegistrationPolicy()

    # ========== Writes ==========

    @track_operation("register")
    def register(
        self,
        session_id: str,
        participant_id: str,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        """
        Enroll a participant in a session

        Raises:
            SessionNotFound: Unknown session
            WindowClosedError: Session has already ended
            AlreadyRegisteredError: Pair already holds an active entry
            CapacityExceededError: No free slot at commit time
            RetryableError: Write lock not acquired; retry the whole call
        """
        now = current_time(self.time_provider, now)
        with LogOperation(
            logger,
            "register",
            session_id=session_id,
            participant_id=participant_id,
            actor_id=actor_id,
        ):
            try:
                entry = self._register(session_id, participant_id, now, actor_id)
            except Exception as e:
                registrations_total.labels(outcome=_outcome_label(e)).inc()
                raise
            registrations_total.labels(outcome="registered").inc()
            return entry

    def _register(
        self, session_id: str, participant_id: str, now: datetime, actor_id: str | None
    ) -> RegistrationEntry:
        with self.database.write_transaction("register") as conn:
            session = self.session_store.get_in(conn, session_id)
            if session is None:
                raise SessionNotFound(session_id)

            validate_registration_window(session, now)
            validate_not_already_registered(
                session_id,
                participant_id,
                self.ledger.find_active_in(conn, session_id, participant_id),
            )
            active_count = self.ledger.count_active_in(conn, session_id)
            validate_capacity_available(session, active_count)

            entry = RegistrationEntry(
                entry_id=new_entry_id(),
                session_id=session_id,
                participant_id=participant_id,
                status=StoredStatus.REGISTERED,
                registered_at=now,
                status_changed_at=now,
            )
            self.ledger.insert(conn, entry)
            self.session_store.set_registered_count(conn, session_id, active_count + 1)

            payload = ParticipantRegistered(
                entry_id=entry.entry_id,
                session_id=session_id,
                participant_id=participant_id,
                registered_at=now,
                registered_count=active_count + 1,
                capacity=session.capacity,
            ).model_dump(mode="json")
            self.event_store.record(
                conn, session_id, "ParticipantRegistered", now, payload, actor_id
            )

        return entry

    @track_operation("cancel")
    def cancel(
        self,
        session_id: str,
        participant_id: str,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        """
        Withdraw a participant's active registration

        Repeating a cancel returns the already-cancelled entry unchanged.
        Cancelling after the session ended is applied as a historical
        correction and issues a LateCancellationWarning.

        Raises:
            SessionNotFound: Unknown session
            RegistrationNotFound: No active entry and no prior cancellation
            RetryableError: Write lock not acquired
        """
        now = current_time(self.time_provider, now)
        with LogOperation(
            logger,
            "cancel",
            session_id=session_id,
            participant_id=participant_id,
            actor_id=actor_id,
        ):
            late = False
            with self.database.write_transaction("cancel") as conn:
                session = self.session_store.get_in(conn, session_id)
                if session is None:
                    raise SessionNotFound(session_id)

                active = self.ledger.find_active_in(conn, session_id, participant_id)
                if active is None:
                    previous = latest_entry(self.ledger.history_in(conn, session_id, participant_id))
                    if previous is not None and previous.status == StoredStatus.CANCELLED:
                        logger.info(
                            "Cancel repeated, returning existing cancelled entry",
                            session_id=session_id,
                            entry_id=previous.entry_id,
                        )
                        return previous
                    raise RegistrationNotFound(session_id, participant_id)

                late = session_status(session, now) == SessionStatus.COMPLETED
                cancelled = self.ledger.update_status(conn, active, StoredStatus.CANCELLED, now)
                active_count = self.ledger.count_active_in(conn, session_id)
                self.session_store.set_registered_count(conn, session_id, active_count)

                payload = RegistrationCancelled(
                    entry_id=cancelled.entry_id,
                    session_id=session_id,
                    participant_id=participant_id,
                    cancelled_at=now,
                    registered_count=active_count,
                    late=late,
                ).model_dump(mode="json")
                self.event_store.record(
                    conn, session_id, "RegistrationCancelled", now, payload, actor_id
                )

            cancellations_total.labels(late=str(late).lower()).inc()
            if late:
                logger.warning(
                    "Registration cancelled after session ended",
                    session_id=session_id,
                    entry_id=cancelled.entry_id,
                    ended_at=session.window.end.isoformat(),
                )
                warnings.warn(LateCancellationWarning(session_id, participant_id), stacklevel=3)
            return cancelled

    @track_operation("record_attendance")
    def record_attendance(
        self,
        session_id: str,
        participant_id: str,
        outcome: AttendanceOutcome | str,
        now: datetime | None = None,
        completed_at: datetime | None = None,
        performance_score: float | None = None,
        actor_id: str | None = None,
    ) -> RegistrationEntry:
        """
        Mark the active entry completed or absent

        completed_at defaults to now for a completed outcome and is left empty
        for absent. The stored marking is not shown as completed until the
        session has ended (see lifecycle.display_registration_status).

        Raises:
            ValidationError: Unknown outcome, score outside 0-100, naive completed_at
            SessionNotFound: Unknown session
            RegistrationNotFound: No active entry for the pair
        """
        now = current_time(self.time_provider, now)
        outcome = parse_attendance_outcome(outcome)
        validate_performance_score(performance_score)
        if completed_at is not None:
            try:
                completed_at = ensure_utc(completed_at, "completed_at")
            except ValueError as e:
                raise ValidationError(str(e), [{"field": "completed_at", "message": str(e)}]) from e
        elif outcome == AttendanceOutcome.COMPLETED:
            completed_at = now

        with LogOperation(
            logger,
            "record_attendance",
            session_id=session_id,
            participant_id=participant_id,
            outcome=outcome.value,
            actor_id=actor_id,
        ):
            with self.database.write_transaction("record_attendance") as conn:
                if self.session_store.get_in(conn, session_id) is None:
                    raise SessionNotFound(session_id)

                active = self.ledger.find_active_in(conn, session_id, participant_id)
                if active is None:
                    raise RegistrationNotFound(session_id, participant_id)

                marked = self.ledger.update_status(
                    conn,
                    active,
                    StoredStatus(outcome.value),
                    now,
                    completed_at=completed_at,
                    performance_score=performance_score,
                )
                self.session_store.set_registered_count(
                    conn, session_id, self.ledger.count_active_in(conn, session_id)
                )

                payload = AttendanceRecorded(
                    entry_id=marked.entry_id,
                    session_id=session_id,
                    participant_id=participant_id,
                    outcome=outcome,
                    recorded_at=now,
                    completed_at=completed_at,
                    performance_score=performance_score,
                ).model_dump(mode="json")
                self.event_store.record(
                    conn, session_id, "AttendanceRecorded", now, payload, actor_id
                )

            attendance_recorded_total.labels(outcome=outcome.value).inc()
            return marked

    # ========== Reads ==========

    def registration_status(
        self, session_id: str, participant_id: str, now: datetime | None = None
    ) -> DisplayRegistrationStatus:
        """Display status of a participant in one session"""
        now = current_time(self.time_provider, now)
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        entry = latest_entry(self.ledger.history(session_id, participant_id))
        return display_registration_status(entry, session, now)

    def registration_history(self, session_id: str, participant_id: str) -> list[RegistrationEntry]:
        """Every entry the pair ever had, oldest first"""
        return self.ledger.history(session_id, participant_id)

    @track_operation("session_summary")
    def session_summary(self, session_id: str, now: datetime | None = None) -> SessionSummary:
        """
        Session with derived status and authoritative occupancy

        A cached registered_count that disagrees with the ledger is repaired.

        Raises:
            SessionNotFound: Unknown session
        """
        now = current_time(self.time_provider, now)
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        active_count = self.ledger.count_active(session_id)
        session = reconcile_registered_count(
            self.database, self.session_store, self.ledger, session, active_count
        )

        return SessionSummary(
            session=session,
            status=session_status(session, now),
            registered_count=active_count,
            available_slots=max(0, session.capacity - active_count),
        )

    @track_operation("reconcile_registered_counts")
    def reconcile_registered_counts(self) -> dict[str, tuple[int, int]]:
        """
        Repair every cached registered_count that drifted from the ledger

        Returns:
            {session_id: (cached, actual)} for each repaired session
        """
        with LogOperation(logger, "reconcile_registered_counts"):
            actual_counts = self.ledger.count_active_by_session()
            repaired = {}
            for session in self.session_store.list_all():
                actual = actual_counts.get(session.session_id, 0)
                if actual != session.registered_count:
                    reconcile_registered_count(
                        self.database, self.session_store, self.ledger, session, actual
                    )
                    repaired[session.session_id] = (session.registered_count, actual)
            return repaired

