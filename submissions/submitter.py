"""
Single-table submitter that writes directly when online and queues offline.
"""

from typing import Callable, Optional, TYPE_CHECKING

from shared.log import create_logger
from worker.notifications import LoggingNotifier, Notification, Notifier

if TYPE_CHECKING:
    from backend.client import BackendClient
    from sync_queue.models import Operation
    from sync_queue.offline_queue import OfflineQueue
    from worker.connectivity import ConnectivityMonitor

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Submit")


class OfflineSubmitter:
    """
    Offline-aware writer for one table.

    Args:
        table: Backend table name
        backend: BackendClient used while online
        queue: OfflineQueue used while offline
        monitor: ConnectivityMonitor deciding which path to take
        notifier: Receives "Saved" / "Saved offline" / "Error" notifications
        on_success: Called with no arguments after either path succeeds
        on_error: Called with the exception before it is re-raised

    Usage:
        submitter = OfflineSubmitter("batches", client, queue, monitor)
        rows = submitter.submit({"batch_number": "B-100"})   # None when queued
    """

    def __init__(
        self,
        table: str,
        backend: 'BackendClient',
        queue: 'OfflineQueue',
        monitor: 'ConnectivityMonitor',
        notifier: Optional[Notifier] = None,
        on_success: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.table = table
        self.backend = backend
        self.queue = queue
        self.monitor = monitor
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.on_success = on_success
        self.on_error = on_error

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    def submit(self, data: dict, operation: 'str | Operation' = "insert") -> Optional[list[dict]]:
        """
        Write one row.

        Returns:
            Backend rows when written online, None when queued offline

        Raises:
            ValueError: Unknown operation
            BackendError: Online write failed (not queued)
        """
        try:
            if self.monitor.is_online:
                rows = self.backend.execute(self.table, operation, data)
                self.notifier(Notification("Saved", "Data saved successfully"))
            else:
                entry = self.queue.add(self.table, operation, data)
                log_debug(f"Offline, queued {entry.id} for {self.table}")
                self.notifier(Notification("Saved offline", "Data will sync when you're back online"))
                rows = None
        except Exception as e:
            log_error(f"Submit to {self.table} failed: {e}")
            self.notifier(Notification("Error", str(e) or "Failed to save data", destructive=True))
            if self.on_error is not None:
                self.on_error(e)
            raise

        if self.on_success is not None:
            self.on_success()
        return rows


__all__ = ['OfflineSubmitter']
