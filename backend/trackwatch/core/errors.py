"""
Centralized error types and their HTTP mapping.

Services raise the exceptions below; routes stay thin and call app_error_to_http.
New error categories get a rule in APP_ERROR_RULES instead of checks in routes.
"""
from __future__ import annotations

from typing import Callable

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class TrackwatchError(Exception):
    """Base class for errors raised by trackwatch services."""


class UpstreamError(TrackwatchError):
    """An external API answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """Timeout, transport failure, 5xx or 429. Retried by retrying components."""


class AuthExpiredError(UpstreamError):
    """Still 401 after one refresh-or-login and retry."""


class MissingCredentialsError(TrackwatchError):
    """Required credentials are not configured."""


class InvalidInputError(TrackwatchError, ValueError):
    """Malformed input, rejected before any I/O."""


class RateLimitedError(TrackwatchError):
    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidJobTransitionError(TrackwatchError):
    """Job status may only move forward: pending -> processing -> completed | failed."""


class DriverNotificationError(TrackwatchError):
    """Driver subscription refused (not in top 5, duplicate, unknown map or user)."""


# ---------------------------------------------------------------------------
# HTTP status codes and user-facing messages
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_TOO_MANY_REQUESTS = 429
STATUS_INTERNAL_ERROR = 500
STATUS_BAD_GATEWAY = 502
STATUS_SERVICE_UNAVAILABLE = 503  # credentials missing, upstream down

MSG_RATE_LIMITED = "Too many search requests. Please wait {retry_after}s before trying again."
MSG_UPSTREAM_UNAVAILABLE = "Leaderboard service is unavailable right now. Try again later."
MSG_NOT_CONFIGURED = "Service credentials are not configured."


# List of (exception type, status_code, detail or None to use str(exc)). First match wins.
APP_ERROR_RULES: list[tuple[type[Exception], int, str | None]] = [
    (InvalidInputError, STATUS_BAD_REQUEST, None),
    (DriverNotificationError, STATUS_BAD_REQUEST, None),
    (InvalidJobTransitionError, STATUS_CONFLICT, None),
    (MissingCredentialsError, STATUS_SERVICE_UNAVAILABLE, MSG_NOT_CONFIGURED),
    (TransientUpstreamError, STATUS_SERVICE_UNAVAILABLE, MSG_UPSTREAM_UNAVAILABLE),
    (UpstreamError, STATUS_BAD_GATEWAY, None),
]


def _rate_limited_to_http(exc: RateLimitedError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_TOO_MANY_REQUESTS,
        detail=MSG_RATE_LIMITED.format(retry_after=exc.retry_after),
        headers={"Retry-After": str(exc.retry_after)},
    )


_SPECIAL_HANDLERS: list[tuple[type[Exception], Callable[..., HTTPException]]] = [
    (RateLimitedError, _rate_limited_to_http),
]


def app_error_to_http(exc: Exception) -> HTTPException:
    """
    Map an exception from a service call into an HTTPException.
    Uses APP_ERROR_RULES for known error types; otherwise returns 500 with the exception message.
    """
    for exc_type, handler in _SPECIAL_HANDLERS:
        if isinstance(exc, exc_type):
            return handler(exc)
    for exc_type, status_code, detail in APP_ERROR_RULES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=detail or str(exc))
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=str(exc))
