"""
Connectivity signal for the offline write path.

ConnectivityMonitor is an observable online/offline flag. Anything can feed
it (a platform network callback, a test, or ConnectivityPoller, which polls
the backend health endpoint in a daemon thread). Subscribers are told about
every change and never about repeated values.
"""

import threading
from typing import Callable, List, Optional, TYPE_CHECKING

from shared.log import create_logger

if TYPE_CHECKING:
    from backend.client import BackendClient

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Connectivity")

OnlineCallback = Callable[[bool], None]


class Subscription:
    """Handle returned by ConnectivityMonitor.subscribe(); cancel() is idempotent."""

    def __init__(self, monitor: 'ConnectivityMonitor', callback: OnlineCallback):
        self._monitor = monitor
        self._callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._monitor._unsubscribe(self._callback)
            self.active = False


class ConnectivityMonitor:
    """
    Observable online flag.

    Args:
        online: Initial state (default: True)

    Attributes:
        was_offline: Set when coming back online, cleared on going offline
                     or by clear_was_offline() ("back online" banner flag)

    Usage:
        monitor = ConnectivityMonitor(online=False)
        sub = monitor.subscribe(lambda online: print("online" if online else "offline"))
        monitor.set_online(True)
        sub.cancel()
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._was_offline = False
        self._subscribers: List[OnlineCallback] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def was_offline(self) -> bool:
        return self._was_offline

    def clear_was_offline(self) -> None:
        self._was_offline = False

    def set_online(self, online: bool) -> bool:
        """
        Update the flag and notify subscribers if it changed.

        Returns:
            True if the state changed
        """
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            self._was_offline = online
            subscribers = list(self._subscribers)

        if online:
            log_info("Back online")
        else:
            log_warn("Connection lost, working offline")

        for callback in subscribers:
            try:
                callback(online)
            except Exception as e:
                log_error(f"Connectivity subscriber {callback!r} failed: {e}")
        return True

    def subscribe(self, callback: OnlineCallback) -> Subscription:
        with self._lock:
            self._subscribers.append(callback)
        return Subscription(self, callback)

    def _unsubscribe(self, callback: OnlineCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)


class ConnectivityPoller:
    """
    Daemon thread that polls backend health and feeds a ConnectivityMonitor.

    Args:
        client: BackendClient to check
        monitor: ConnectivityMonitor to update
        poll_interval: Seconds between checks (default: 5.0)
        timeout: Per-check request timeout (default: 5.0)
    """

    def __init__(
        self,
        client: 'BackendClient',
        monitor: ConnectivityMonitor,
        poll_interval: float = 5.0,
        timeout: float = 5.0,
    ):
        self.client = client
        self.monitor = monitor
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def poll_once(self) -> bool:
        """Run one health check and push the result to the monitor."""
        from backend.health import check_backend_health

        healthy, latency_ms = check_backend_health(self.client, timeout=self.timeout)
        if healthy:
            log_trace(f"Health check ok ({latency_ms:.0f}ms)")
        self.monitor.set_online(healthy)
        return healthy

    def start(self) -> None:
        if self.running:
            log_trace("Poller already running")
            return
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._poll_loop, name="hatchsync-poller", daemon=True)
        self.thread.start()
        log_debug(f"Connectivity poller started (every {self.poll_interval}s)")

    def stop(self) -> None:
        if self.thread is None:
            return
        self._stop_event.set()
        self.thread.join(timeout=self.timeout + 1.0)
        if self.thread.is_alive():
            log_warn("Connectivity poller did not stop in time")
        self.thread = None
        log_trace("Connectivity poller stopped")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            # Event.wait returns early on stop()
            self._stop_event.wait(self.poll_interval)


__all__ = ['ConnectivityMonitor', 'ConnectivityPoller', 'Subscription', 'OnlineCallback']
