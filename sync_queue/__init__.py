"""
Offline Write Queue Module

Durable FIFO of pending backend writes using SQLite-backed persistence.
Entries survive process restarts and backend outages and are replayed in
order once the backend is reachable again.
"""

from sync_queue.manager import QueueManager
from sync_queue.models import QueuedEntry, Operation, EntryStatus, EntryView, SyncResult
from sync_queue.dlq import DeadLetterQueue
from sync_queue.attempts import AttemptLedger
from sync_queue.offline_queue import OfflineQueue

__all__ = [
    'QueueManager',
    'QueuedEntry',
    'Operation',
    'EntryStatus',
    'EntryView',
    'SyncResult',
    'DeadLetterQueue',
    'AttemptLedger',
    'OfflineQueue',
]
