"""Error taxonomy shared by the ingress and worker roles.

Every error carries the HTTP status the ingress maps it to, so the mapping
lives in exactly one place.
"""

from __future__ import annotations


class PipelineError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or (type(self).__doc__ or self.code).strip()
        super().__init__(self.message)


class RequestValidationError(PipelineError):
    """Invalid request."""

    status_code = 400
    code = "validation_error"


class AuthenticationError(PipelineError):
    """Authentication required."""

    status_code = 401
    code = "authentication_required"


class AuthorizationError(PipelineError):
    """Not allowed to access this resource."""

    status_code = 403
    code = "forbidden"


class NotFoundError(PipelineError):
    """Not found."""

    status_code = 404
    code = "not_found"


class ExportNotReady(NotFoundError):
    """Export not ready."""

    code = "export_not_ready"


class ConflictError(PipelineError):
    """Conflicting state."""

    status_code = 409
    code = "conflict"


class BudgetExhausted(PipelineError):
    """Monthly spend limit reached; new analyses are paused."""

    status_code = 402
    code = "budget_exhausted"


class RateLimitError(PipelineError):
    """Too many requests."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str | None = None, *, retry_after: int = 60, limit: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


class ServiceUnavailable(PipelineError):
    """Service temporarily unavailable."""

    status_code = 503
    code = "unavailable"


class QueueBusy(ServiceUnavailable):
    """Analysis queue is full; try again shortly."""

    code = "queue_busy"


class QueueUnavailable(ServiceUnavailable):
    """Job queue unavailable."""

    code = "queue_unavailable"


class StorageUnavailable(ServiceUnavailable):
    """Artifact storage unavailable."""

    code = "storage_unavailable"


class IdExhausted(ServiceUnavailable):
    """Could not allocate a unique report id."""

    code = "id_exhausted"


class JobCancelled(PipelineError):
    """Run cancelled."""

    status_code = 409
    code = "cancelled"


class InternalError(PipelineError):
    """Internal error."""


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "BudgetExhausted",
    "ConflictError",
    "ExportNotReady",
    "IdExhausted",
    "InternalError",
    "JobCancelled",
    "NotFoundError",
    "PipelineError",
    "QueueBusy",
    "QueueUnavailable",
    "RateLimitError",
    "RequestValidationError",
    "ServiceUnavailable",
    "StorageUnavailable",
]
