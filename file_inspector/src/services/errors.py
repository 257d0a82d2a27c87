from enum import Enum

import httpx
from google.genai import errors as genai_errors


class OracleErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    MISSING_RESULT = "missing_result"
    GENERIC = "generic"


class OracleError(Exception):
    """A classified failure of one oracle call."""

    def __init__(
        self,
        message: str,
        *,
        kind: OracleErrorKind = OracleErrorKind.GENERIC,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


_RATE_LIMIT_HINTS = ("429", "resource_exhausted", "resource exhausted", "quota", "rate limit", "too many requests")
_AUTH_HINTS = ("401", "403", "unauthenticated", "permission_denied", "permission denied", "api key", "credentials", "forbidden")
_TIMEOUT_HINTS = ("deadline_exceeded", "deadline exceeded", "timed out", "timeout")
_CONNECTION_HINTS = ("connection", "unreachable", "name resolution", "network")


def _kind_for_status(code: int | None) -> OracleErrorKind:
    if code == 429:
        return OracleErrorKind.RATE_LIMITED
    if code in (401, 403):
        return OracleErrorKind.AUTH_FAILURE
    if code in (408, 504):
        return OracleErrorKind.TIMEOUT
    return OracleErrorKind.GENERIC


def _kind_for_message(message: str) -> OracleErrorKind:
    msg = message.lower()
    if any(s in msg for s in _RATE_LIMIT_HINTS):
        return OracleErrorKind.RATE_LIMITED
    if any(s in msg for s in _AUTH_HINTS):
        return OracleErrorKind.AUTH_FAILURE
    if any(s in msg for s in _TIMEOUT_HINTS):
        return OracleErrorKind.TIMEOUT
    if any(s in msg for s in _CONNECTION_HINTS):
        return OracleErrorKind.CONNECTION_ERROR
    return OracleErrorKind.GENERIC


def classify_exception(exc: Exception) -> OracleError:
    """Map an exception raised by the SDK or transport to an OracleError."""
    if isinstance(exc, OracleError):
        return exc

    if isinstance(exc, genai_errors.APIError):
        kind = _kind_for_status(exc.code)
        if kind is OracleErrorKind.GENERIC:
            kind = _kind_for_message(f"{exc.status or ''} {exc.message or ''}")
        return OracleError(exc.message or str(exc), kind=kind, status_code=exc.code)

    # httpx.TimeoutException is a TransportError, so check it first.
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return OracleError(str(exc) or "Request timed out", kind=OracleErrorKind.TIMEOUT)
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return OracleError(str(exc) or "Connection failed", kind=OracleErrorKind.CONNECTION_ERROR)

    return OracleError(str(exc), kind=_kind_for_message(str(exc)))
