"""
Queue manager: owns the persistent SQLite-backed queue.

Resolves the data directory, creates <data_dir>/queue and opens a
persist-queue SQLiteAckQueue there. Entries survive process restarts; items
left un-acked by a crashed sync pass are resumed to ready on the next open.
"""

import os
from typing import Optional

import persistqueue

from shared.log import create_logger

log_trace, log_debug, log_info, log_warn, log_error = create_logger("QueueManager")

DATA_DIR_ENV = "HATCHSYNC_DATA"


def default_data_dir() -> str:
    """HATCHSYNC_DATA if set, otherwise ~/.hatchsync/data."""
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return env_dir
    return os.path.join(os.path.expanduser("~"), ".hatchsync", "data")


class QueueManager:
    """
    Owns the persistent queue for offline writes.

    Args:
        data_dir: Data directory. Falls back to HATCHSYNC_DATA, then
                  ~/.hatchsync/data.

    Usage:
        manager = QueueManager("/var/lib/hatchsync")
        queue = manager.get_queue()
        ...
        manager.shutdown()
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or default_data_dir()
        self.queue_path = os.path.join(self.data_dir, "queue")
        os.makedirs(self.queue_path, exist_ok=True)

        self._queue = self._init_queue()
        log_debug(f"Queue opened at {self.queue_path}")

    def _init_queue(self) -> 'persistqueue.SQLiteAckQueue':
        """Open the SQLiteAckQueue (auto_commit so every put is durable immediately)."""
        return persistqueue.SQLiteAckQueue(
            self.queue_path,
            auto_commit=True,
            multithreading=True,
        )

    def get_queue(self) -> 'persistqueue.SQLiteAckQueue':
        """Return the underlying SQLiteAckQueue."""
        return self._queue

    def shutdown(self) -> None:
        """Close the queue connection."""
        log_info("Queue manager shutting down")
        close = getattr(self._queue, 'close', None)
        if close is not None:
            try:
                close()
            except Exception as e:
                log_debug(f"Queue close failed: {e}")
