"""
Backend health check via the REST root.

The REST root (/rest/v1/) serves the OpenAPI description and needs the
database schema cache, so it only answers once the API can actually take
writes. A plain TCP or HTTP check would pass while the database is still
unreachable.

This module provides a health check function used by:
- ConnectivityPoller (drives the online/offline signal)
- The manual queue processor (pre-flight before draining)
"""

import time
from typing import Tuple, TYPE_CHECKING

from shared.log import create_logger

if TYPE_CHECKING:
    from backend.client import BackendClient

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Health")

__all__ = ["check_backend_health"]


def check_backend_health(client: "BackendClient", timeout: float = 5.0) -> Tuple[bool, float]:
    """
    Check backend health via the REST root.

    Args:
        client: BackendClient instance to check
        timeout: Request timeout in seconds (default: 5.0, shorter than normal 10s)

    Returns:
        Tuple of (is_healthy, latency_ms):
        - (True, latency_ms) if the API responded successfully
        - (False, 0.0) if unreachable or returned an error

    Examples:
        >>> from backend.client import BackendClient
        >>> from backend.health import check_backend_health
        >>> client = BackendClient(url="https://abc.supabase.co", api_key="key")
        >>> healthy, latency = check_backend_health(client)
    """
    try:
        start = time.perf_counter()
        client.ping(timeout=timeout)
        end = time.perf_counter()

        latency_ms = (end - start) * 1000.0
        log_debug(f"Health check passed (latency: {latency_ms:.1f}ms)")
        return (True, latency_ms)

    except Exception as exc:
        # Any failure means "not healthy"; failures are expected while
        # offline, so log at debug and let the caller decide.
        log_debug(f"Health check failed: {type(exc).__name__}: {exc}")
        return (False, 0.0)
