"""
SQLite Session Store - durable record of training sessions

Sessions are never hard-deleted. Definition writes and the cached
registered_count bump both take the caller's connection, so they commit inside
the same transaction as the ledger change or audit event that caused them.
"""

import json
import sqlite3
from datetime import datetime

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.retry import call_with_read_retry
from training_registry.sessions.models import Session

_SESSION_COLUMNS = (
    "session_id, title, description, category, start_at, end_at, capacity, "
    "location_json, instructor_json, mandatory, tags_json, registered_count, "
    "created_at, updated_at"
)


class SQLiteSessionStore:
    """
    Session persistence

    Schema:
    - sessions table keyed by session_id, window stored as ISO-8601 UTC text
    """

    def __init__(self, database: SQLiteDatabase, policy: RegistrationPolicy | None = None) -> None:
        self.database = database
        self.policy = policy or RegistrationPolicy()
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self.database.connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT '',
                    start_at TEXT NOT NULL,
                    end_at TEXT NOT NULL,
                    capacity INTEGER NOT NULL CHECK (capacity >= 1),
                    location_json TEXT,
                    instructor_json TEXT,
                    mandatory INTEGER NOT NULL DEFAULT 0,
                    tags_json TEXT NOT NULL DEFAULT '[]',
                    registered_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_at)")

    # ========== Writes (caller-owned transaction) ==========

    def insert(self, conn: sqlite3.Connection, session: Session) -> None:
        conn.execute(
            f"INSERT INTO sessions ({_SESSION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._session_to_row(session),
        )

    def update_definition(self, conn: sqlite3.Connection, session: Session) -> None:
        """Overwrite the mutable definition fields; registered_count is left alone"""
        conn.execute(
            """
            UPDATE sessions SET
                title = ?, description = ?, category = ?, start_at = ?, end_at = ?,
                capacity = ?, location_json = ?, instructor_json = ?, mandatory = ?,
                tags_json = ?, updated_at = ?
            WHERE session_id = ?
            """,
            (
                session.title,
                session.description,
                session.category,
                session.window.start.isoformat(),
                session.window.end.isoformat(),
                session.capacity,
                _placement_json(session.location),
                _placement_json(session.instructor),
                int(session.mandatory),
                json.dumps(sorted(session.tags)),
                session.updated_at.isoformat(),
                session.session_id,
            ),
        )

    def set_registered_count(self, conn: sqlite3.Connection, session_id: str, count: int) -> None:
        """Store the cached counter; callers pass the count read from the ledger"""
        conn.execute(
            "UPDATE sessions SET registered_count = ? WHERE session_id = ?",
            (count, session_id),
        )

    # ========== Reads ==========

    def get_in(self, conn: sqlite3.Connection, session_id: str) -> Session | None:
        """Read a session on an existing connection (inside a transaction)"""
        row = conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return self._row_to_session(row) if row else None

    def get(self, session_id: str) -> Session | None:
        """Return a session by ID, or None if not found"""

        def _load() -> Session | None:
            with self.database.connect() as conn:
                return self.get_in(conn, session_id)

        return self._read(_load)

    def list_all(self) -> list[Session]:
        """Return all sessions ordered by window start ascending"""

        def _load() -> list[Session]:
            with self.database.connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions ORDER BY start_at ASC, session_id ASC"
                )
                return [self._row_to_session(row) for row in cursor.fetchall()]

        return self._read(_load)

    def get_many(self, session_ids: set[str]) -> dict[str, Session]:
        """Return the sessions with the given ids, keyed by id (unknown ids are skipped)"""
        if not session_ids:
            return {}
        ids = sorted(session_ids)
        placeholders = ", ".join("?" for _ in ids)

        def _load() -> dict[str, Session]:
            with self.database.connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE session_id IN ({placeholders})",
                    ids,
                )
                return {row["session_id"]: self._row_to_session(row) for row in cursor.fetchall()}

        return self._read(_load)

    def _read(self, load):
        return call_with_read_retry(
            load,
            self.policy.read_retry_attempts,
            self.policy.read_retry_min_wait_ms,
            self.policy.read_retry_max_wait_ms,
        )

    # ========== Row mapping ==========

    def _session_to_row(self, session: Session) -> tuple:
        return (
            session.session_id,
            session.title,
            session.description,
            session.category,
            session.window.start.isoformat(),
            session.window.end.isoformat(),
            session.capacity,
            _placement_json(session.location),
            _placement_json(session.instructor),
            int(session.mandatory),
            json.dumps(sorted(session.tags)),
            session.registered_count,
            session.created_at.isoformat(),
            session.updated_at.isoformat(),
        )

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session.model_validate(
            {
                "session_id": row["session_id"],
                "title": row["title"],
                "description": row["description"],
                "category": row["category"],
                "window": {
                    "start": datetime.fromisoformat(row["start_at"]),
                    "end": datetime.fromisoformat(row["end_at"]),
                },
                "capacity": row["capacity"],
                "location": json.loads(row["location_json"]) if row["location_json"] else None,
                "instructor": json.loads(row["instructor_json"]) if row["instructor_json"] else None,
                "mandatory": bool(row["mandatory"]),
                "tags": frozenset(json.loads(row["tags_json"])),
                "registered_count": row["registered_count"],
                "created_at": datetime.fromisoformat(row["created_at"]),
                "updated_at": datetime.fromisoformat(row["updated_at"]),
            }
        )


def _placement_json(placement) -> str | None:
    return placement.model_dump_json() if placement is not None else None
