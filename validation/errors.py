"""
Error classification for replayed writes.

A failed replay is either transient (network trouble, overload, a
serialization conflict that a later attempt can win) or permanent (the
backend rejected the row itself: constraint violation, row level security,
unknown column). The offline queue records the classification with every
failure and uses it for dead-letter routing when a retry cap is configured.

PostgREST reports both an HTTP status and, for database errors, the
Postgres SQLSTATE (or a ``PGRST...`` code for its own errors). When a code
is known it decides; otherwise the status does.
"""

import logging
from typing import Optional, Type


class TransientError(Exception):
    """Retry-able errors (network, timeout, 5xx)"""
    pass


class PermanentError(Exception):
    """Non-retry-able errors (4xx except 408/429, rejected rows)"""
    pass


# 408 request timeout, 429 rate limited, 5xx gateway/server trouble
TRANSIENT_CODES = frozenset({408, 429, 500, 502, 503, 504})

# 400 malformed payload or unknown column
# 401 bad or expired API key
# 403 row level security rejected the write
# 404 table not exposed by the API
# 405 verb not allowed on a view
# 409 unique or foreign key violation
# 422 payload failed a check constraint
PERMANENT_CODES = frozenset({400, 401, 403, 404, 405, 409, 422})

# SQLSTATE classes, keyed by their two-character prefix
TRANSIENT_SQLSTATE_CLASSES = frozenset({
    '08',  # connection exception
    '40',  # transaction rollback: serialization failure, deadlock
    '53',  # insufficient resources: too many connections, disk full
    '57',  # operator intervention: statement timeout, admin shutdown
})
PERMANENT_SQLSTATE_CLASSES = frozenset({
    '22',  # data exception: bad value for column type
    '23',  # integrity constraint violation
    '42',  # syntax error or access rule violation (incl. 42501 RLS)
})

logger = logging.getLogger('HatchSync.errors')


def classify_http_error(status_code: int) -> Type[Exception]:
    """
    Classify an HTTP status code as transient or permanent error.

    Unknown 4xx codes are permanent and unknown 5xx transient; anything
    else (1xx-3xx never reach here normally) is treated as transient.
    """
    if status_code in TRANSIENT_CODES:
        logger.debug(f"HTTP {status_code} classified as transient")
        return TransientError

    if status_code in PERMANENT_CODES or 400 <= status_code < 500:
        logger.debug(f"HTTP {status_code} classified as permanent")
        return PermanentError

    logger.debug(f"HTTP {status_code} classified as transient")
    return TransientError


def classify_postgrest_error(status_code: int, code: Optional[str] = None) -> Type[Exception]:
    """
    Classify a PostgREST error response.

    Args:
        status_code: HTTP status of the response
        code: ``code`` field of the error body: a SQLSTATE such as
              '23505', or a PostgREST code such as 'PGRST204'

    Returns:
        TransientError or PermanentError
    """
    if code:
        code = str(code)
        if code.startswith('PGRST'):
            # PGRST0xx: the API could not reach the database
            if code.startswith('PGRST0'):
                logger.debug(f"{code} (database unreachable) classified as transient")
                return TransientError
            logger.debug(f"{code} (request rejected by API) classified as permanent")
            return PermanentError

        sql_class = code[:2]
        if sql_class in TRANSIENT_SQLSTATE_CLASSES:
            logger.debug(f"SQLSTATE {code} classified as transient")
            return TransientError
        if sql_class in PERMANENT_SQLSTATE_CLASSES:
            logger.debug(f"SQLSTATE {code} classified as permanent")
            return PermanentError

    return classify_http_error(status_code)


def classify_exception(exc: Exception) -> Type[Exception]:
    """
    Classify an exception raised while replaying an entry.

    BackendError subclasses already carry their classification. Raw httpx
    status errors are classified by status; connection and timeout errors
    are transient; a malformed entry (ValueError and friends) is permanent.
    Anything unrecognised is transient, so the entry stays queued.
    """
    if isinstance(exc, (TransientError, PermanentError)):
        kind = TransientError if isinstance(exc, TransientError) else PermanentError
        logger.debug(f"Exception already {kind.__name__}: {exc}")
        return kind

    response = getattr(exc, 'response', None)
    status_code = getattr(response, 'status_code', None) if response is not None else None
    if status_code is not None:
        logger.debug(f"Exception has HTTP response with status {status_code}")
        return classify_http_error(status_code)

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        logger.debug(f"Network error classified as transient: {type(exc).__name__}")
        return TransientError

    if isinstance(exc, (ValueError, TypeError, KeyError, AttributeError)):
        logger.debug(f"Bad entry data classified as permanent: {type(exc).__name__}")
        return PermanentError

    logger.debug(f"Unknown exception classified as transient: {type(exc).__name__}")
    return TransientError


__all__ = [
    'TransientError',
    'PermanentError',
    'TRANSIENT_CODES',
    'PERMANENT_CODES',
    'classify_http_error',
    'classify_postgrest_error',
    'classify_exception',
]
