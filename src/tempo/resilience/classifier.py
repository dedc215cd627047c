"""Failure classification and translation for proxied service calls.

``classify_error`` decides whether a failure is worth retrying.  The rules
cover the exception types raised by the collaborators this package is used
with: httpx-based HTTP adapters, asyncpg-backed stores, and plain socket
errors.  Anything not recognised as transient is permanent.

``translate_error`` maps a permanent failure onto the core taxonomy so that
nothing downstream of the proxy sees collaborator-native exceptions.
"""

from __future__ import annotations

import asyncio
import enum
import errno
import socket

import asyncpg
import httpx

from tempo.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
    TempoError,
    TransientServiceError,
    ValidationError,
)

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})

_TRANSIENT_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
        errno.ENETUNREACH,
        errno.EHOSTUNREACH,
        errno.ENETDOWN,
        errno.EPIPE,
    }
)

_TRANSIENT_ASYNCPG_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.SerializationError,
)

_CONFLICT_ASYNCPG_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.UniqueViolationError,
    asyncpg.exceptions.ExclusionViolationError,
)

_VALIDATION_ASYNCPG_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.DataError,
    asyncpg.exceptions.IntegrityConstraintViolationError,
)


class ErrorClass(enum.StrEnum):
    """Retry classification for a failed call."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


def status_code_of(exc: BaseException) -> int | None:
    """Return an HTTP-like status code carried by *exc*, if any."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _is_transient_status(code: int) -> bool:
    return code in TRANSIENT_STATUS_CODES or 500 <= code <= 599


def classify_error(exc: BaseException) -> ErrorClass:
    """Classify *exc* as transient (retry-worthy) or permanent.

    ``asyncio.CancelledError`` must never reach this function; callers
    re-raise cancellation before classifying.
    """
    if isinstance(exc, TransientServiceError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, TempoError):
        return ErrorClass.PERMANENT

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TRANSIENT
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return ErrorClass.TRANSIENT
    if isinstance(exc, _TRANSIENT_ASYNCPG_ERRORS):
        return ErrorClass.TRANSIENT
    if isinstance(exc, (ConnectionError, socket.gaierror)):
        return ErrorClass.TRANSIENT
    if isinstance(exc, OSError) and exc.errno in _TRANSIENT_ERRNOS:
        return ErrorClass.TRANSIENT

    code = status_code_of(exc)
    if code is not None and _is_transient_status(code):
        return ErrorClass.TRANSIENT

    return ErrorClass.PERMANENT


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorClass.TRANSIENT


def translate_error(exc: BaseException, *, service: str, method: str) -> TempoError:
    """Translate a failure into the core taxonomy.

    Core errors keep their type and gain the service/method they came from.
    Transient failures become ``TransientServiceError``.  Permanent failures
    are mapped by status code or database error class, falling back to
    ``ServiceError``.
    """
    if isinstance(exc, TempoError):
        if exc.service is None:
            exc.service = service
        if exc.method is None:
            exc.method = method
        return exc

    message = f"{service}.{method} failed: {exc}"

    if is_transient(exc):
        return TransientServiceError(message, service=service, method=method, cause=exc)

    if isinstance(exc, _CONFLICT_ASYNCPG_ERRORS):
        return ConflictError(message, service=service, method=method, cause=exc)
    if isinstance(exc, _VALIDATION_ASYNCPG_ERRORS):
        return ValidationError(message, service=service, method=method, cause=exc)
    if isinstance(exc, (LookupError, FileNotFoundError)):
        return NotFoundError(message, service=service, method=method, cause=exc)
    if isinstance(exc, ValueError):
        return ValidationError(message, service=service, method=method, cause=exc)

    code = status_code_of(exc)
    if code == 404 or code == 410:
        return NotFoundError(message, service=service, method=method, cause=exc)
    if code == 409 or code == 412:
        return ConflictError(message, service=service, method=method, cause=exc)
    if code in (400, 422):
        return ValidationError(message, service=service, method=method, cause=exc)

    return ServiceError(message, service=service, method=method, cause=exc)
