"""Job store error taxonomy."""

from __future__ import annotations


class JobStoreError(Exception):
    """Base class for every error raised by a job repository."""


class JobValidationError(JobStoreError, ValueError):
    """A field is missing or malformed. Never retried."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"invalid {field}")


class JobNotFoundError(JobStoreError, LookupError):
    """Job, run or agent does not resolve in the current tenant."""

    def __init__(self, kind: str = "job", ident: str | None = None):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found" + (f": {ident}" if ident else ""))


class JobConflictError(JobStoreError):
    """State changed underneath the caller, e.g. completing a finished run."""


class StoreConfigurationError(JobStoreError, RuntimeError):
    """Store not wired up. Fatal, not retried."""


class RetryableStoreError(JobStoreError):
    """Transient transactional failure (busy database, lock timeout)."""
