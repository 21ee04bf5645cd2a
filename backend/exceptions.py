"""
Backend exception hierarchy.

Every failure of a backend call surfaces as a BackendError subclass that is
also a TransientError or PermanentError, so the queue can classify failures
without knowing about HTTP:

    BackendError
    ├── BackendTemporaryError (TransientError)  timeouts, 429, 5xx
    │   └── BackendUnavailable                  no connection at all
    └── BackendPermanentError (PermanentError)  4xx, malformed entries
"""

from typing import Optional

import httpx

from validation.errors import TransientError, PermanentError, classify_postgrest_error


class BackendError(Exception):
    """Base class for backend call failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class BackendTemporaryError(BackendError, TransientError):
    """Retry-able backend failure (timeout, rate limit, 5xx)."""


class BackendUnavailable(BackendTemporaryError):
    """Backend unreachable (DNS, refused connection, network down)."""


class BackendPermanentError(BackendError, PermanentError):
    """Backend rejected the write (bad payload, constraint, auth)."""


def error_from_response(response: httpx.Response) -> BackendError:
    """
    Build a BackendError from a failed PostgREST response.

    PostgREST errors look like {"code": "23505", "message": "...", "details": ..., "hint": ...}.
    """
    code = None
    message = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get('code')
        message = body.get('message') or message
        if body.get('details'):
            message = f"{message} ({body['details']})"

    text = f"HTTP {response.status_code}: {message}"
    if classify_postgrest_error(response.status_code, code) is TransientError:
        return BackendTemporaryError(text, status_code=response.status_code, code=code)
    return BackendPermanentError(text, status_code=response.status_code, code=code)


def translate_http_error(exc: Exception) -> BackendError:
    """
    Convert an httpx exception into the BackendError hierarchy.

    Args:
        exc: Exception raised by an httpx call

    Returns:
        BackendError subclass instance (original chained by the caller)
    """
    if isinstance(exc, BackendError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_response(exc.response)

    if isinstance(exc, httpx.TimeoutException):
        return BackendTemporaryError(f"Backend request timed out: {exc}")

    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
        return BackendUnavailable(f"Backend unreachable: {exc}")

    if isinstance(exc, httpx.TransportError):
        return BackendTemporaryError(f"Backend transport error: {exc}")

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return BackendUnavailable(f"Backend unreachable: {exc}")

    return BackendTemporaryError(f"Unexpected backend error: {type(exc).__name__}: {exc}")


__all__ = [
    'BackendError',
    'BackendTemporaryError',
    'BackendUnavailable',
    'BackendPermanentError',
    'error_from_response',
    'translate_http_error',
]
