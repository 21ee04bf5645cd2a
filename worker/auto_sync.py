"""
Auto-sync controller: replays the offline queue when connectivity returns.

States:
- OFFLINE: No connection; nothing is scheduled
- ONLINE_IDLE: Connected; a sync may be scheduled or requested
- ONLINE_SYNCING: A sync pass is running

Going online with pending entries schedules one sync after a settle delay,
so a flaky just-reconnected link gets a moment to stabilise. Going offline
cancels that timer but never interrupts a pass already running.
"""

import threading
from enum import Enum
from typing import Optional, TYPE_CHECKING

from shared.log import create_logger
from worker.notifications import LoggingNotifier, Notifier, SYNC_FAILED, sync_notifications

if TYPE_CHECKING:
    from backend.client import BackendClient
    from sync_queue.models import SyncResult
    from sync_queue.offline_queue import OfflineQueue
    from worker.connectivity import ConnectivityMonitor, Subscription

log_trace, log_debug, log_info, log_warn, log_error = create_logger("AutoSync")


class SyncState(Enum):
    """Auto-sync controller states."""
    OFFLINE = "offline"
    ONLINE_IDLE = "online_idle"
    ONLINE_SYNCING = "online_syncing"


class AutoSyncController:
    """
    Drives OfflineQueue.sync_all() from connectivity changes.

    Args:
        queue: OfflineQueue to drain
        monitor: ConnectivityMonitor to follow
        backend: BackendClient passed to sync_all() (default: the queue's own)
        notifier: Callable receiving Notification objects (default: log them)
        settle_delay: Seconds to wait after reconnecting before syncing (default: 2.0)

    Usage:
        controller = AutoSyncController(queue, monitor, settle_delay=2.0)
        controller.start()
        ...
        controller.sync_now()   # "Sync now" button
        controller.stop()
    """

    def __init__(
        self,
        queue: 'OfflineQueue',
        monitor: 'ConnectivityMonitor',
        backend: Optional['BackendClient'] = None,
        notifier: Optional[Notifier] = None,
        settle_delay: float = 2.0,
    ):
        self.queue = queue
        self.monitor = monitor
        self.backend = backend
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.settle_delay = settle_delay
        self.last_result: Optional['SyncResult'] = None

        self._lock = threading.Lock()
        self._state = SyncState.ONLINE_IDLE if monitor.is_online else SyncState.OFFLINE
        self._syncing = False
        self._timer: Optional[threading.Timer] = None
        self._subscription: Optional['Subscription'] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def sync_scheduled(self) -> bool:
        return self._timer is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Follow the monitor; if already online with pending entries, schedule a sync."""
        if self._subscription is not None:
            log_trace("Already started")
            return
        self._subscription = self.monitor.subscribe(self._on_connectivity_change)
        self._on_connectivity_change(self.monitor.is_online)
        log_debug(f"Auto-sync started (state={self._state.value})")

    def stop(self) -> None:
        """Unsubscribe and cancel any scheduled sync. A running pass finishes on its own."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        with self._lock:
            self._cancel_timer()
        log_debug("Auto-sync stopped")

    # =========================================================================
    # Transitions
    # =========================================================================

    def _on_connectivity_change(self, online: bool) -> None:
        with self._lock:
            if not online:
                if self._cancel_timer():
                    log_debug("Connection lost, scheduled sync cancelled")
                self._state = SyncState.OFFLINE
                return

            if self._syncing:
                self._state = SyncState.ONLINE_SYNCING
                return

            self._state = SyncState.ONLINE_IDLE
            pending = self.queue.get_count()
            if pending > 0:
                self._schedule(pending)

    def _schedule(self, pending: int) -> None:
        """Start (or restart) the settle timer. Caller holds the lock."""
        self._cancel_timer()
        self._timer = threading.Timer(self.settle_delay, self._on_timer)
        self._timer.daemon = True
        self._timer.start()
        log_debug(f"{pending} pending entries, syncing in {self.settle_delay}s")

    def _cancel_timer(self) -> bool:
        """Cancel the settle timer if any. Caller holds the lock."""
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self._run_sync()

    # =========================================================================
    # Sync
    # =========================================================================

    def sync_now(self) -> Optional['SyncResult']:
        """
        Manual sync. Runs in the calling thread.

        Returns:
            SyncResult, or None if offline, already syncing, nothing pending,
            or the pass raised (a "Sync failed" notification is sent)
        """
        with self._lock:
            self._cancel_timer()
        return self._run_sync()

    def _run_sync(self) -> Optional['SyncResult']:
        with self._lock:
            if self._syncing or not self.monitor.is_online:
                return None
            self._syncing = True
            self._state = SyncState.ONLINE_SYNCING

        result = None
        try:
            if self.queue.get_count() == 0:
                log_trace("Nothing to sync")
                return None
            result = self.queue.sync_all(self.backend)
        except Exception as e:
            log_error(f"Sync failed: {type(e).__name__}: {e}")
            self._notify(SYNC_FAILED)
            return None
        finally:
            with self._lock:
                self._syncing = False
                self._state = SyncState.ONLINE_IDLE if self.monitor.is_online else SyncState.OFFLINE

        self.last_result = result
        for notification in sync_notifications(result):
            self._notify(notification)
        return result

    def _notify(self, notification) -> None:
        try:
            self.notifier(notification)
        except Exception as e:
            log_warn(f"Notifier failed for '{notification.title}': {e}")


__all__ = ['SyncState', 'AutoSyncController']
