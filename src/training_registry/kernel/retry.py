"""
Bounded retry for idempotent reads.

Only reads are retried transparently. Writes that hit SQLite lock contention
surface as RetryableError instead, because a register retry must re-check
capacity rather than blindly repeat.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from training_registry.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 50,
    max_wait_ms: int = 500,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention (OperationalError).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds (default: 50)
        max_wait_ms: Maximum wait time in milliseconds (default: 500)

    Example:
        @retry_on_sqlite_lock()
        def get(self, session_id):
            ...
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite read hit a lock, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )


def call_with_read_retry(
    func: Callable[[], T],
    max_attempts: int,
    min_wait_ms: int,
    max_wait_ms: int,
) -> T:
    """Run a zero-argument read callable under retry_on_sqlite_lock."""
    return retry_on_sqlite_lock(max_attempts, min_wait_ms, max_wait_ms)(func)()
