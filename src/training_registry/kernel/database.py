"""
SQLite connection handling shared by the session store, ledger and event log

All three live in one database file so that a registration, the cached
counter bump and its audit event commit in a single transaction. Writes run
under BEGIN IMMEDIATE, which takes the database write lock up front: the
capacity count and the entry insert of a register call can never interleave
with another writer, in this process or any other.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from training_registry.kernel.errors import RetryableError, StoreError
from training_registry.kernel.logging import get_logger

logger = get_logger(__name__)


class SQLiteDatabase:
    """
    Connection factory for the registry database

    Connections are opened per operation and run in autocommit mode; explicit
    transactions are opened with write_transaction().
    """

    def __init__(self, db_path: str | Path, busy_timeout_seconds: float = 30.0) -> None:
        """
        Args:
            db_path: Path to SQLite database file
            busy_timeout_seconds: How long to wait for a lock before giving up
        """
        self.db_path = Path(db_path)
        self.busy_timeout_seconds = busy_timeout_seconds
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that is always closed on exit"""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def write_transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside a BEGIN IMMEDIATE transaction

        Commits on success and rolls back on any exception. Lock timeouts and
        other operational failures become RetryableError; domain errors raised
        inside the block propagate unchanged after rollback.

        Args:
            operation: Operation name for error reporting
        """
        with self.connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                logger.warning("Write lock not acquired", operation=operation, error=str(e))
                raise RetryableError(operation, str(e)) from e

            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                _rollback(conn)
                logger.warning("Write aborted by store conflict", operation=operation, error=str(e))
                raise RetryableError(operation, str(e)) from e
            except sqlite3.DatabaseError as e:
                _rollback(conn)
                raise StoreError(f"{operation} failed: {e}") from e
            except BaseException:
                _rollback(conn)
                raise


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")
