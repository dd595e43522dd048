"""
Registration Policy - tunable parameters of the registry

Pagination bounds, read-retry budget and the write-lock wait all live here so
deployments can adjust them without touching service code.
"""

import os

from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "TRAINING_REGISTRY_"


class RegistrationPolicy(BaseModel):
    """Operational parameters for the registration engine"""

    default_page_size: int = Field(
        default=20,
        ge=1,
        description="Roster page size used when the caller gives none",
    )

    max_page_size: int = Field(
        default=500,
        ge=1,
        description="Largest page size a caller may request",
    )

    read_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for idempotent reads on SQLite lock contention",
    )

    read_retry_min_wait_ms: int = Field(default=50, ge=0)

    read_retry_max_wait_ms: int = Field(default=500, ge=0)

    busy_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a write waits for the database write lock",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "RegistrationPolicy":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        if self.read_retry_min_wait_ms > self.read_retry_max_wait_ms:
            raise ValueError("read_retry_min_wait_ms cannot exceed read_retry_max_wait_ms")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "RegistrationPolicy":
        """
        Build a policy from TRAINING_REGISTRY_* environment variables

        Unset variables keep their defaults, e.g.
        TRAINING_REGISTRY_DEFAULT_PAGE_SIZE=50.
        """
        source = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = source.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls(**values)
