"""
Offline write queue: durable FIFO of pending backend writes.

Writes attempted while offline are persisted here and replayed, oldest
first, when connectivity returns or a manual sync is requested:

- A replay that succeeds is acknowledged (removed) immediately.
- A replay that fails stays queued, keeps its position, and is retried on
  the next pass. Failures never abort the pass.
- If a retry cap is configured, an entry that reaches it moves to the
  dead letter queue instead of being retried forever.

Only one pass runs at a time; a second sync_all() while one is in flight
returns immediately without touching the queue.
"""

import heapq
import sqlite3
import threading
from collections import deque
from typing import Any, Optional, TYPE_CHECKING

from pydantic import ValidationError

from shared.log import create_logger
from sync_queue.attempts import AttemptLedger, AttemptRecord
from sync_queue.dlq import DeadLetterQueue
from sync_queue.models import (
    EntryStatus,
    EntryView,
    Operation,
    QueuedEntry,
    SyncResult,
    create_entry,
)
from sync_queue.operations import (
    ack_entry,
    clear_pending_items,
    count_pending,
    delete_pending_item,
    enqueue,
    fail_entry,
    get_pending,
    list_pending_jobs,
    nack_entry,
)
from validation.errors import classify_exception

if TYPE_CHECKING:
    from backend.client import BackendClient
    from sync_queue.manager import QueueManager

log_trace, log_debug, log_info, log_warn, log_error = create_logger("OfflineQueue")


class OfflineQueue:
    """
    Durable queue of pending writes with ordered replay.

    Args:
        manager: QueueManager owning the persistent queue
        backend: Default BackendClient for sync_all() (may be passed per call instead)
        ledger: AttemptLedger for failure bookkeeping (default: attempts.json in data_dir)
        dlq: DeadLetterQueue for capped entries (default: dlq.db in data_dir when a cap is set)
        max_sync_attempts: Failed replays before dead-lettering; None retries forever

    Usage:
        queue = OfflineQueue(QueueManager(data_dir), backend=client)
        queue.add("batches", "insert", {"batch_number": "B-100"})
        result = queue.sync_all()
        print(result.success, result.failed)
    """

    # Warn once when an uncapped entry has failed this many times
    PERSISTENT_FAILURE_WARNING = 5

    def __init__(
        self,
        manager: 'QueueManager',
        backend: Optional['BackendClient'] = None,
        ledger: Optional[AttemptLedger] = None,
        dlq: Optional[DeadLetterQueue] = None,
        max_sync_attempts: Optional[int] = None,
    ):
        if max_sync_attempts is not None and max_sync_attempts < 1:
            raise ValueError("max_sync_attempts must be at least 1")

        self.manager = manager
        self.queue = manager.get_queue()
        self.queue_path = manager.queue_path
        self.backend = backend
        self.ledger = ledger if ledger is not None else AttemptLedger(manager.data_dir)
        self.max_sync_attempts = max_sync_attempts
        if dlq is None and max_sync_attempts is not None:
            dlq = DeadLetterQueue(manager.data_dir)
        self.dlq = dlq

        # Entries the durable store refused; kept until synced or cleared
        self._memory: list[QueuedEntry] = []
        self._memory_lock = threading.Lock()

        # Guard against overlapping passes (never waited on by sync_all)
        self._sync_lock = threading.Lock()

    # =========================================================================
    # Enqueue / inspect
    # =========================================================================

    def add(self, table: str, operation: str | Operation, data: dict) -> QueuedEntry:
        """
        Queue a write for later replay.

        Persistence is best-effort: if the local store fails, the entry is
        kept in memory only and a warning is logged.

        Raises:
            ValueError: Unknown operation or empty table name
        """
        entry = create_entry(table, operation, data)
        try:
            enqueue(self.queue, entry)
        except (sqlite3.Error, OSError) as e:
            log_warn(f"Local store unavailable, keeping entry {entry.id} in memory only: {e}")
            with self._memory_lock:
                self._memory.append(entry)
        log_debug(f"Queued {entry.operation.value} on {entry.table} ({entry.id})")
        return entry

    def _durable_entries(self) -> list[QueuedEntry]:
        entries = []
        for job in list_pending_jobs(self.queue_path):
            try:
                entries.append(QueuedEntry.from_job(job))
            except ValidationError as e:
                log_warn(f"Skipping malformed queued job: {e}")
        return entries

    def get_all(self) -> list[QueuedEntry]:
        """All pending entries, oldest first."""
        with self._memory_lock:
            memory = list(self._memory)
        durable = self._durable_entries()
        if not memory:
            return durable
        return list(heapq.merge(durable, memory, key=lambda e: e.created_at))

    def get(self, entry_id: str) -> Optional[QueuedEntry]:
        for entry in self.get_all():
            if entry.id == entry_id:
                return entry
        return None

    def get_entries(self) -> list[EntryView]:
        """Pending entries joined with their failure history, oldest first."""
        with self._memory_lock:
            memory_ids = {e.id for e in self._memory}
        views = []
        for entry in self.get_all():
            record = self.ledger.get(entry.id)
            view = EntryView(entry=entry, durable=entry.id not in memory_ids)
            if record is not None and record.retry_count > 0:
                view.status = EntryStatus.FAILED
                view.retry_count = record.retry_count
                view.error_message = record.error_message
            views.append(view)
        return views

    def get_count(self) -> int:
        """Number of pending entries (drives the pending-sync badge)."""
        with self._memory_lock:
            memory_count = len(self._memory)
        return count_pending(self.queue_path) + memory_count

    def has_pending(self, table: str, record_id: Optional[Any] = None) -> bool:
        """True if a write for this table (and row, when given) is still queued."""
        for entry in self.get_all():
            if entry.table != table:
                continue
            if record_id is not None and entry.target_id != record_id:
                continue
            return True
        return False

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    # =========================================================================
    # Replay
    # =========================================================================

    def sync_one(self, entry: QueuedEntry, backend: Optional['BackendClient'] = None) -> bool:
        """
        Replay one entry against the backend and record the outcome.

        Removal from storage is done by sync_all(), which holds the queue
        item; this only issues the call and updates the attempt ledger.

        Returns:
            True if the backend accepted the write
        """
        error, _ = self._replay(entry, self._resolve_backend(backend))
        return error is None

    def _resolve_backend(self, backend: Optional['BackendClient']) -> 'BackendClient':
        backend = backend if backend is not None else self.backend
        if backend is None:
            raise ValueError("No backend configured for sync")
        return backend

    def _replay(self, entry: QueuedEntry, backend: 'BackendClient') -> tuple[Optional[Exception], Optional[AttemptRecord]]:
        """Issue the backend call; returns (error, attempt record), both None on success."""
        try:
            backend.execute(entry.table, entry.operation, dict(entry.data))
        except Exception as e:
            kind = classify_exception(e).__name__
            log_debug(f"Entry {entry.id} ({entry.operation.value} {entry.table}) failed [{kind}]: {e}")
            return e, self.ledger.record_failure(entry.id, e)
        self.ledger.forget(entry.id)
        log_trace(f"Entry {entry.id} applied")
        return None, None

    def _should_dead_letter(self, record: AttemptRecord) -> bool:
        if self.max_sync_attempts is None:
            if record.retry_count == self.PERSISTENT_FAILURE_WARNING:
                log_warn(
                    f"An entry has failed {record.retry_count} times "
                    f"({record.error_type}: {record.error_message}); no retry cap is configured"
                )
            return False
        return record.retry_count >= self.max_sync_attempts

    def sync_all(self, backend: Optional['BackendClient'] = None) -> SyncResult:
        """
        Replay every pending entry, oldest first.

        Returns:
            SyncResult with success/failed counts; skipped=True if another
            pass was already running (nothing was done).

        Raises:
            ValueError: No backend configured
            sqlite3.Error: The local store failed mid-pass (entries stay queued)
        """
        backend = self._resolve_backend(backend)

        if not self._sync_lock.acquire(blocking=False):
            log_debug("Sync already in progress, skipping")
            return SyncResult(skipped=True)

        try:
            result = self._drain(backend)
        finally:
            self._sync_lock.release()

        if result.total:
            log_info(
                f"Sync pass complete: {result.success} synced, {result.failed} failed"
                + (f", {result.dead_lettered} dead-lettered" if result.dead_lettered else "")
            )
        return result

    def _drain(self, backend: 'BackendClient') -> SyncResult:
        result = SyncResult()
        with self._memory_lock:
            memory = deque(self._memory)

        # Failed durable jobs stay un-acked until the pass ends so get()
        # skips them; nacking then puts them back in their original slots.
        held: list[dict] = []
        in_flight = None
        job = None
        try:
            job = get_pending(self.queue)
            while job is not None or memory:
                if job is not None and (not memory or job.get('created_at', '') <= memory[0].created_at):
                    in_flight, job = job, None
                    self._sync_durable(in_flight, backend, result, held)
                    in_flight = None
                    job = get_pending(self.queue)
                else:
                    self._sync_memory(memory.popleft(), backend, result)
        finally:
            # A job taken out but not settled when the pass aborted is
            # released too, or get() would never hand it out again.
            stranded = [j for j in (in_flight, job) if j is not None]
            self._release(held + stranded)

        if result.success or result.dead_lettered:
            self.queue.clear_acked_data()
        return result

    def _release(self, jobs: list) -> None:
        for job in jobs:
            try:
                nack_entry(self.queue, job)
            except sqlite3.Error as e:
                # Still un-acked on disk; persist-queue resumes it on next open
                log_warn(f"Could not return job {job.get('id', '?')} to the queue: {e}")

    def _sync_durable(self, job: dict, backend: 'BackendClient', result: SyncResult, held: list) -> None:
        try:
            entry = QueuedEntry.from_job(job)
        except ValidationError as e:
            log_error(f"Unreadable queued job {job.get('id', '?')}, marking failed: {e}")
            fail_entry(self.queue, job)
            result.failed += 1
            return

        error, record = self._replay(entry, backend)
        if error is None:
            ack_entry(self.queue, job)
            result.success += 1
            return

        result.failed += 1
        if self._should_dead_letter(record) and self.dlq is not None:
            self.dlq.add(job, error, record.retry_count)
            fail_entry(self.queue, job)
            self.ledger.forget(entry.id)
            result.dead_lettered += 1
        else:
            held.append(job)

    def _sync_memory(self, entry: QueuedEntry, backend: 'BackendClient', result: SyncResult) -> None:
        error, record = self._replay(entry, backend)
        if error is None:
            self._drop_memory(entry.id)
            result.success += 1
            return

        result.failed += 1
        if self._should_dead_letter(record) and self.dlq is not None:
            self.dlq.add(entry.to_job(), error, record.retry_count)
            self._drop_memory(entry.id)
            self.ledger.forget(entry.id)
            result.dead_lettered += 1

    def _drop_memory(self, entry_id: str) -> None:
        with self._memory_lock:
            self._memory = [e for e in self._memory if e.id != entry_id]

    # =========================================================================
    # Discard
    # =========================================================================

    def discard(self, entry_id: str) -> bool:
        """
        Drop one pending entry without replaying it.

        Waits for a running pass to finish first.

        Returns:
            True if the entry was found
        """
        with self._sync_lock:
            with self._memory_lock:
                before = len(self._memory)
                self._memory = [e for e in self._memory if e.id != entry_id]
                found = len(self._memory) != before
            if not found:
                found = delete_pending_item(self.queue_path, entry_id)
            if found:
                self.ledger.forget(entry_id)
                log_info(f"Discarded entry {entry_id}")
            return found

    def clear(self) -> int:
        """
        Drop every pending entry. Waits for a running pass to finish first.

        Returns:
            Number of entries removed
        """
        with self._sync_lock:
            with self._memory_lock:
                removed = len(self._memory)
                self._memory.clear()
            removed += clear_pending_items(self.queue_path)
            self.ledger.clear()
        log_info(f"Cleared {removed} pending entries")
        return removed


__all__ = ['OfflineQueue']
