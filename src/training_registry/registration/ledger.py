"""
SQLite Registration Ledger - durable record of enrollment entries

The at-most-one-active-entry rule is enforced twice: the registration service
checks it inside its write transaction, and a partial unique index on
(session_id, participant_id) WHERE status = 'registered' makes a duplicate
active row impossible even for a writer that skipped the check.

Write methods take the caller's connection and never commit; the registration
service owns the transaction.
"""

import sqlite3
from datetime import datetime

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.errors import AlreadyRegisteredError, StoreError
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.retry import call_with_read_retry
from training_registry.registration.models import RegistrationEntry, StoredStatus

_ENTRY_COLUMNS = (
    "entry_id, session_id, participant_id, status, registered_at, "
    "status_changed_at, completed_at, performance_score"
)


class SQLiteRegistrationLedger:
    """
    Registration entry persistence

    Schema:
    - registrations table, one row per entry (history is never overwritten)
    - uq_active_registration: partial unique index on active entries
    """

    def __init__(self, database: SQLiteDatabase, policy: RegistrationPolicy | None = None) -> None:
        self.database = database
        self.policy = policy or RegistrationPolicy()
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self.database.connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registrations (
                    entry_id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    participant_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    registered_at TEXT NOT NULL,
                    status_changed_at TEXT NOT NULL,
                    completed_at TEXT,
                    performance_score REAL
                )
            """)
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS uq_active_registration "
                "ON registrations(session_id, participant_id) WHERE status = 'registered'"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_registrations_session "
                "ON registrations(session_id, status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_registrations_participant "
                "ON registrations(participant_id)"
            )

    # ========== Writes (caller-owned transaction) ==========

    def insert(self, conn: sqlite3.Connection, entry: RegistrationEntry) -> None:
        """
        Insert a new entry

        Raises:
            AlreadyRegisteredError: If an active entry already exists for the pair
        """
        try:
            conn.execute(
                f"INSERT INTO registrations ({_ENTRY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                self._entry_to_row(entry),
            )
        except sqlite3.IntegrityError as e:
            if entry.status == StoredStatus.REGISTERED and "registrations" in str(e):
                raise AlreadyRegisteredError(entry.session_id, entry.participant_id) from e
            raise StoreError(f"Failed to insert registration {entry.entry_id}: {e}") from e

    def update_status(
        self,
        conn: sqlite3.Connection,
        entry: RegistrationEntry,
        status: StoredStatus,
        changed_at: datetime,
        completed_at: datetime | None = None,
        performance_score: float | None = None,
    ) -> RegistrationEntry:
        """Transition an entry to a new stored status and return the updated entry"""
        updated = entry.model_copy(
            update={
                "status": status,
                "status_changed_at": changed_at,
                "completed_at": completed_at,
                "performance_score": performance_score,
            }
        )
        conn.execute(
            """
            UPDATE registrations
            SET status = ?, status_changed_at = ?, completed_at = ?, performance_score = ?
            WHERE entry_id = ?
            """,
            (
                updated.status.value,
                updated.status_changed_at.isoformat(),
                updated.completed_at.isoformat() if updated.completed_at else None,
                updated.performance_score,
                updated.entry_id,
            ),
        )
        return updated

    # ========== Reads on an open connection ==========

    def find_active_in(
        self, conn: sqlite3.Connection, session_id: str, participant_id: str
    ) -> RegistrationEntry | None:
        row = conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM registrations "
            "WHERE session_id = ? AND participant_id = ? AND status = ?",
            (session_id, participant_id, StoredStatus.REGISTERED.value),
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def history_in(
        self, conn: sqlite3.Connection, session_id: str, participant_id: str
    ) -> list[RegistrationEntry]:
        cursor = conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM registrations "
            "WHERE session_id = ? AND participant_id = ? ORDER BY registered_at ASC, entry_id ASC",
            (session_id, participant_id),
        )
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def count_active_in(self, conn: sqlite3.Connection, session_id: str) -> int:
        """Authoritative active registration count for a session"""
        return conn.execute(
            "SELECT COUNT(*) FROM registrations WHERE session_id = ? AND status = ?",
            (session_id, StoredStatus.REGISTERED.value),
        ).fetchone()[0]

    # ========== Reads (retried) ==========

    def count_active(self, session_id: str) -> int:
        def _load() -> int:
            with self.database.connect() as conn:
                return self.count_active_in(conn, session_id)

        return self._read(_load)

    def count_active_by_session(self) -> dict[str, int]:
        """Active registration counts for every session that has any"""

        def _load() -> dict[str, int]:
            with self.database.connect() as conn:
                cursor = conn.execute(
                    "SELECT session_id, COUNT(*) AS active FROM registrations "
                    "WHERE status = ? GROUP BY session_id",
                    (StoredStatus.REGISTERED.value,),
                )
                return {row["session_id"]: row["active"] for row in cursor.fetchall()}

        return self._read(_load)

    def history(self, session_id: str, participant_id: str) -> list[RegistrationEntry]:
        """All entries for a pair, oldest first"""

        def _load() -> list[RegistrationEntry]:
            with self.database.connect() as conn:
                return self.history_in(conn, session_id, participant_id)

        return self._read(_load)

    def entries(
        self,
        *,
        session_id: str | None = None,
        participant_id: str | None = None,
    ) -> list[RegistrationEntry]:
        """
        Entries matching the given equality filters, in storage order

        Storage order is not guaranteed stable; callers that paginate must sort.
        """
        conditions = []
        params: list[str] = []
        if session_id is not None:
            conditions.append("session_id = ?")
            params.append(session_id)
        if participant_id is not None:
            conditions.append("participant_id = ?")
            params.append(participant_id)
        where_clause = " AND ".join(conditions) if conditions else "1=1"

        def _load() -> list[RegistrationEntry]:
            with self.database.connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_ENTRY_COLUMNS} FROM registrations WHERE {where_clause}",
                    params,
                )
                return [self._row_to_entry(row) for row in cursor.fetchall()]

        return self._read(_load)

    def _read(self, load):
        return call_with_read_retry(
            load,
            self.policy.read_retry_attempts,
            self.policy.read_retry_min_wait_ms,
            self.policy.read_retry_max_wait_ms,
        )

    # ========== Row mapping ==========

    def _entry_to_row(self, entry: RegistrationEntry) -> tuple:
        return (
            entry.entry_id,
            entry.session_id,
            entry.participant_id,
            entry.status.value,
            entry.registered_at.isoformat(),
            entry.status_changed_at.isoformat(),
            entry.completed_at.isoformat() if entry.completed_at else None,
            entry.performance_score,
        )

    def _row_to_entry(self, row: sqlite3.Row) -> RegistrationEntry:
        return RegistrationEntry(
            entry_id=row["entry_id"],
            session_id=row["session_id"],
            participant_id=row["participant_id"],
            status=StoredStatus(row["status"]),
            registered_at=datetime.fromisoformat(row["registered_at"]),
            status_changed_at=datetime.fromisoformat(row["status_changed_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
            ),
            performance_score=row["performance_score"],
        )
