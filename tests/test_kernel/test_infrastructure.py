"""
Test infrastructure components: logging, metrics, retry and the write
transaction wrapper.
"""

import sqlite3
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

from training_registry.kernel.database import SQLiteDatabase
from training_registry.kernel.errors import CapacityExceededError, RetryableError, StoreError
from training_registry.kernel.logging import (
    LogOperation,
    configure_logging,
    get_correlation_id,
    get_logger,
    redact_context,
    set_correlation_id,
)
from training_registry.kernel.metrics import track_operation
from training_registry.kernel.retry import call_with_read_retry, retry_on_sqlite_lock


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        assert get_logger(__name__) is not None

    def test_configure_logging_json(self) -> None:
        configure_logging(json_output=True, log_level="DEBUG")
        assert get_logger(__name__) is not None

    def test_correlation_id(self) -> None:
        """Test correlation ID context management."""
        cid = get_correlation_id()
        assert cid

        set_correlation_id("roster-export-42")
        assert get_correlation_id() == "roster-export-42"

    def test_redact_context_hides_identity_and_contact_fields(self) -> None:
        redacted = redact_context(
            {"actor_id": "admin-1", "email": "a@example.org", "session_id": "ses-1"}
        )
        assert redacted == {
            "actor_id": "***REDACTED***",
            "email": "***REDACTED***",
            "session_id": "ses-1",
        }

    def test_log_operation_passes_through_business_rejection(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(CapacityExceededError):
            with LogOperation(logger, "register", session_id="ses-1"):
                raise CapacityExceededError("ses-1", 2, 2)

    def test_log_operation_with_exception(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(ValueError):
            with LogOperation(logger, "failing_operation"):
                raise ValueError("Test error")


def sample(status: str) -> float:
    value = REGISTRY.get_sample_value(
        "training_registry_operations_total",
        {"operation": "test_tracked", "status": status},
    )
    return value or 0.0


class TestMetrics:
    def test_track_operation_counts_success_and_failure(self) -> None:
        @track_operation("test_tracked")
        def tracked(fail: bool) -> str:
            if fail:
                raise ValueError("boom")
            return "ok"

        before_success = sample("success")
        before_failure = sample("failure")

        assert tracked(False) == "ok"
        with pytest.raises(ValueError):
            tracked(True)

        assert sample("success") == before_success + 1
        assert sample("failure") == before_failure + 1


class TestReadRetry:
    def test_retries_operational_error_then_succeeds(self) -> None:
        attempts = []

        def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "rows"

        assert call_with_read_retry(flaky, 3, 0, 0) == "rows"
        assert len(attempts) == 3

    def test_gives_up_after_max_attempts(self) -> None:
        attempts = []

        @retry_on_sqlite_lock(max_attempts=2, min_wait_ms=0, max_wait_ms=0)
        def always_locked() -> None:
            attempts.append(1)
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            always_locked()
        assert len(attempts) == 2

    def test_other_errors_are_not_retried(self) -> None:
        attempts = []

        def broken() -> None:
            attempts.append(1)
            raise KeyError("missing")

        with pytest.raises(KeyError):
            call_with_read_retry(broken, 3, 0, 0)
        assert len(attempts) == 1


class TestWriteTransaction:
    def test_commits_on_success(self, database: SQLiteDatabase) -> None:
        with database.connect() as conn:
            conn.execute("CREATE TABLE t (v INTEGER)")
        with database.write_transaction("insert") as conn:
            conn.execute("INSERT INTO t VALUES (1)")
        with database.connect() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1

    def test_rolls_back_on_domain_error(self, database: SQLiteDatabase) -> None:
        with database.connect() as conn:
            conn.execute("CREATE TABLE t (v INTEGER)")
        with pytest.raises(CapacityExceededError):
            with database.write_transaction("insert") as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                raise CapacityExceededError("ses-1", 1, 1)
        with database.connect() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0

    def test_lock_timeout_becomes_retryable(self, temp_db: Path) -> None:
        """A writer that cannot get the lock gets RetryableError, not a hang"""
        holder = SQLiteDatabase(temp_db, busy_timeout_seconds=5.0)
        impatient = SQLiteDatabase(temp_db, busy_timeout_seconds=0.05)

        with holder.write_transaction("hold"):
            with pytest.raises(RetryableError) as exc_info:
                with impatient.write_transaction("register"):
                    pass

        assert exc_info.value.operation == "register"

    def test_integrity_error_becomes_store_error(self, database: SQLiteDatabase) -> None:
        with database.connect() as conn:
            conn.execute("CREATE TABLE t (v INTEGER PRIMARY KEY)")
        with pytest.raises(StoreError):
            with database.write_transaction("insert") as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                conn.execute("INSERT INTO t VALUES (1)")
        with database.connect() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
