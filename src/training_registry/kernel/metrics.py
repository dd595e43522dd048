"""
Prometheus metrics for the training registry.

Counts registration outcomes and times every service operation.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram

# ============================================================================
# Registration Metrics
# ============================================================================

registrations_total = Counter(
    "training_registry_registrations_total",
    "Register attempts by outcome",
    ["outcome"],  # registered, already_registered, capacity_exceeded, window_closed, retryable
)

cancellations_total = Counter(
    "training_registry_cancellations_total",
    "Cancellations applied",
    ["late"],  # "true" when the session had already ended
)

attendance_recorded_total = Counter(
    "training_registry_attendance_recorded_total",
    "Attendance markings stored",
    ["outcome"],
)

registered_count_drift_total = Counter(
    "training_registry_registered_count_drift_total",
    "Times the cached registered counter disagreed with the ledger and was repaired",
)

# ============================================================================
# Audit Log Metrics
# ============================================================================

events_appended_total = Counter(
    "training_registry_events_appended_total",
    "Audit events appended to the event log",
    ["event_type"],
)

# ============================================================================
# Operation Metrics
# ============================================================================

operation_duration_seconds = Histogram(
    "training_registry_operation_duration_seconds",
    "Duration of service operations in seconds",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

operations_total = Counter(
    "training_registry_operations_total",
    "Service operations processed",
    ["operation", "status"],  # status: success, failure
)

P = ParamSpec("P")
R = TypeVar("R")


def track_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track operation duration and outcome.

    Args:
        operation: Operation name used as the metric label
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )
                operations_total.labels(operation=operation, status=status).inc()

        return wrapper

    return decorator
