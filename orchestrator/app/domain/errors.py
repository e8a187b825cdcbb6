"""Domain error taxonomy.

Every error carries the correlation ids it was raised for so callers can log them
without re-deriving context. ``retryable`` tells an operator (or the API client)
whether repeating the same call later can succeed without other intervention.
"""
from __future__ import annotations

from typing import Any


class OrchestratorError(Exception):
    """Base for all domain failures."""

    code = "orchestrator_error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        listing_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.listing_id = listing_id

    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"error_code": self.code}
        if self.job_id:
            ctx["job_id"] = self.job_id
        if self.listing_id:
            ctx["listing_id"] = self.listing_id
        return ctx


class ValidationError(OrchestratorError):
    """Malformed or missing input; rejected before any side effect."""

    code = "validation_error"


class NotFoundError(OrchestratorError):
    """Unknown job or listing id."""

    code = "not_found"


class UpstreamTransientError(OrchestratorError):
    """Network failure, timeout or 5xx from the external processor."""

    code = "upstream_transient"
    retryable = True


class UpstreamFailureError(OrchestratorError):
    """The external processor explicitly rejected or failed the work."""

    code = "upstream_failure"


class ConflictError(OrchestratorError):
    """Base for operations that clash with the record's current state."""

    code = "conflict"


class ConcurrencyConflict(ConflictError):
    """The row changed between read and write; safe to retry after re-reading."""

    code = "concurrency_conflict"
    retryable = True


class JobStateConflict(ConflictError):
    """Operation is not valid for the job's current status."""

    code = "job_state_conflict"

    def __init__(self, message: str, *, current: str, job_id: str | None = None, listing_id: str | None = None) -> None:
        super().__init__(message, job_id=job_id, listing_id=listing_id)
        self.current = current


class InvalidTransitionError(ConflictError):
    """Listing status change not allowed by the adjacency table."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, *, listing_id: str | None = None) -> None:
        super().__init__(
            f"invalid transition from {current} to {requested}",
            listing_id=listing_id,
        )
        self.current = current
        self.requested = requested


class RecordSchemaError(ValueError):
    """A persisted document does not match the schema version this code understands."""
