"""Error taxonomy shared by the resilience layer and the workflows.

``ResilientServiceProxy`` is the only place collaborator-native exceptions
are translated into these types; everything downstream of a proxy sees
``TempoError`` subclasses only.
"""

from __future__ import annotations

from typing import Any


class TempoError(Exception):
    """Base class for every error raised by the Tempo core."""

    code: str = "error"

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        method: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.message = message
        self.service = service
        self.method = method
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the structured ``error`` field of a workflow response."""
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.service is not None:
            d["service"] = self.service
        if self.method is not None:
            d["method"] = self.method
        if self.cause is not None:
            d["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return d


class ValidationError(TempoError):
    """Malformed input; permanent, never retried."""

    code = "validation_error"


class NotFoundError(TempoError):
    """Referenced object does not exist (or is no longer usable)."""

    code = "not_found"


class StaleProposalError(NotFoundError):
    """Proposal expired, already consumed, or never existed; re-run the workflow."""

    code = "stale_proposal"


class ConflictError(TempoError):
    """A change collides with existing committed state."""

    code = "conflict"


class ServiceError(TempoError):
    """Permanent collaborator failure without a more specific classification."""

    code = "service_error"


class TransientServiceError(TempoError):
    """Network/timeout-class failure that is worth retrying."""

    code = "transient"


class RetryExhaustedError(TransientServiceError):
    """All retry attempts failed with transient errors."""

    code = "retry_exhausted"

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        delays: list[float],
        service: str | None = None,
        method: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, service=service, method=method, cause=cause)
        self.attempts = attempts
        self.delays = delays


class QueuedError(TempoError):
    """The mutation was accepted into the offline queue but not applied yet."""

    code = "queued"

    def __init__(
        self,
        message: str,
        *,
        operation_id: str,
        service: str | None = None,
        method: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, service=service, method=method, cause=cause)
        self.operation_id = operation_id

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["operation_id"] = self.operation_id
        return d
