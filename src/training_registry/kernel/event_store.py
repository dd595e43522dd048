"""
SQLite Event Store - append-only audit log of session changes

Provides:
- Append-only semantics (events never modified or deleted)
- Per-session streams with optimistic version checks
- Appends that join the caller's write transaction, so an audit event commits
  or rolls back together with the state change it describes
"""

import json
import sqlite3
from datetime import datetime

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.errors import StoreError, StreamVersionConflict
from training_registry.kernel.events import Event, create_event
from training_registry.kernel.ids import generate_id
from training_registry.kernel.metrics import events_appended_total
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.retry import call_with_read_retry

_EVENT_COLUMNS = (
    "event_id, stream_id, stream_type, version, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based audit event store

    Schema:
    - events table: append-only event log
    - Unique constraint: (stream_id, version)
    - Indices: stream_id, event_type, occurred_at
    """

    def __init__(self, database: SQLiteDatabase, policy: RegistrationPolicy | None = None) -> None:
        self.database = database
        self.policy = policy or RegistrationPolicy()
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self.database.connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)")

    def append(
        self,
        conn: sqlite3.Connection,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a stream inside an open write transaction

        The caller owns the transaction (see SQLiteDatabase.write_transaction);
        nothing is committed here.

        Args:
            conn: Connection with an active write transaction
            stream_id: Session id
            expected_version: Stream version the caller based its decision on
            events: Events with sequential versions starting at expected_version + 1

        Raises:
            StreamVersionConflict: If the stream moved since expected_version
            StoreError: On other database errors
        """
        if not events:
            return []

        current_version = self.stream_version(conn, stream_id)
        if current_version != expected_version:
            raise StreamVersionConflict(stream_id, expected_version, current_version)

        try:
            for event in events:
                conn.execute(
                    f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        event.event_id,
                        event.stream_id,
                        event.stream_type,
                        event.version,
                        event.event_type,
                        event.occurred_at.isoformat(),
                        event.actor_id,
                        json.dumps(event.payload),
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "stream_id" in str(e).lower() and "version" in str(e).lower():
                raise StreamVersionConflict(
                    stream_id, expected_version, self.stream_version(conn, stream_id)
                ) from e
            raise StoreError(f"Failed to append events: {e}") from e

        for event in events:
            events_appended_total.labels(event_type=event.event_type).inc()
        return events

    def record(
        self,
        conn: sqlite3.Connection,
        stream_id: str,
        event_type: str,
        occurred_at: datetime,
        payload: dict,
        actor_id: str | None = None,
    ) -> Event:
        """
        Append one event at the next version of a stream

        Used by services inside their write transaction; BEGIN IMMEDIATE
        already excludes other writers, so the version read here holds.
        """
        version = self.stream_version(conn, stream_id)
        event = create_event(
            event_id=generate_id(),
            stream_id=stream_id,
            event_type=event_type,
            occurred_at=occurred_at,
            version=version + 1,
            actor_id=actor_id,
            payload=payload,
        )
        self.append(conn, stream_id, version, [event])
        return event

    def stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        """Current version of a stream (0 if it has no events)"""
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a session in version order

        Returns:
            List of events (empty if the stream doesn't exist)
        """
        return self._select(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
            (stream_id,),
        )

    def query_events(
        self,
        *,
        event_type: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events across all sessions in chronological order

        Args:
            event_type: Filter by event type (e.g., "RegistrationCancelled")
            from_time: Events at or after this time
            to_time: Events at or before this time
            limit: Maximum number of events to return
        """
        conditions = []
        params: list = []

        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)
        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.isoformat())
        if to_time:
            conditions.append("occurred_at <= ?")
            params.append(to_time.isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = (
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE {where_clause} "
            "ORDER BY occurred_at ASC, event_id ASC"
        )
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        return self._select(query, params)

    def count_events(self) -> int:
        def _load() -> int:
            with self.database.connect() as conn:
                return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

        return self._read(_load)

    def _select(self, query: str, params) -> list[Event]:
        def _load() -> list[Event]:
            with self.database.connect() as conn:
                cursor = conn.execute(query, params)
                return [self._row_to_event(row) for row in cursor.fetchall()]

        return self._read(_load)

    def _read(self, load):
        return call_with_read_retry(
            load,
            self.policy.read_retry_attempts,
            self.policy.read_retry_min_wait_ms,
            self.policy.read_retry_max_wait_ms,
        )

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )
