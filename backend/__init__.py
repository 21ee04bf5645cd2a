"""
Backend module for HatchSync.

Client for the hosted backend's per-table REST interface, with the error
hierarchy used for retry classification and a health check.

Classes:
    BackendClient: httpx-based PostgREST client (insert/update/upsert/delete)

Exceptions:
    BackendError: Base class for backend failures
    BackendTemporaryError: Retry-able failures (timeout, 429, 5xx)
    BackendUnavailable: Backend unreachable
    BackendPermanentError: Rejected writes (4xx, missing row id)

Functions:
    translate_http_error: Convert httpx exceptions to our hierarchy
    check_backend_health: Deep health check via the REST root
"""

from backend.exceptions import (
    BackendError,
    BackendTemporaryError,
    BackendUnavailable,
    BackendPermanentError,
    translate_http_error,
)
from backend.client import BackendClient
from backend.health import check_backend_health

__all__ = [
    'BackendClient',
    'BackendError',
    'BackendTemporaryError',
    'BackendUnavailable',
    'BackendPermanentError',
    'translate_http_error',
    'check_backend_health',
]
