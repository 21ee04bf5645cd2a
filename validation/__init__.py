"""
Validation module for HatchSync.

Provides error classification and configuration validation.
"""

from validation.errors import TransientError, PermanentError, classify_exception, classify_http_error, classify_postgrest_error
from validation.config import HatchSyncSettings, validate_config

__all__ = [
    'TransientError',
    'PermanentError',
    'classify_exception',
    'classify_http_error',
    'classify_postgrest_error',
    'HatchSyncSettings',
    'validate_config',
]
