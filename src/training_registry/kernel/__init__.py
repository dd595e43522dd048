"""
Kernel - shared infrastructure for the registry

Clock, ids, errors, SQLite connection handling, the audit event log, policy,
logging, retries and metrics. Nothing here knows about sessions or
registrations beyond the error types.
"""

from training_registry.kernel.errors import (
    AlreadyRegisteredError,
    CapacityConflictError,
    CapacityExceededError,
    LateCancellationWarning,
    NotFoundError,
    RegistrationNotFound,
    RegistryError,
    RetryableError,
    SessionNotFound,
    StoreError,
    StreamVersionConflict,
    ValidationError,
    WindowClosedError,
)
from training_registry.kernel.events import Event
from training_registry.kernel.ids import generate_id
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & policy
    "Event",
    "RegistrationPolicy",
    # Errors
    "RegistryError",
    "ValidationError",
    "NotFoundError",
    "SessionNotFound",
    "RegistrationNotFound",
    "WindowClosedError",
    "AlreadyRegisteredError",
    "CapacityExceededError",
    "CapacityConflictError",
    "StoreError",
    "RetryableError",
    "StreamVersionConflict",
    "LateCancellationWarning",
]
