"""
Queue operations for entry lifecycle management.

Stateless operations that work on queue instance (or queue path) passed in.
Read-side helpers query the persist-queue SQLite table directly so listing
and counting never consume items.
"""

import os
import pickle
import sqlite3
from typing import Optional

from persistqueue.exceptions import Empty

from shared.log import create_logger
from sync_queue.models import QueuedEntry

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Queue")

# persist-queue AckStatus codes
STATUS_INITED = 0
STATUS_READY = 1
STATUS_UNACK = 2
STATUS_ACKED = 5
STATUS_ACK_FAILED = 9

_LIVE_STATUSES = (STATUS_INITED, STATUS_READY, STATUS_UNACK)


def enqueue(queue: 'persistqueue.SQLiteAckQueue', entry: QueuedEntry) -> dict:
    """
    Persist an entry.

    Args:
        queue: SQLiteAckQueue instance
        entry: Entry to store

    Returns:
        The enqueued job dict

    Example:
        >>> from persistqueue import SQLiteAckQueue
        >>> queue = SQLiteAckQueue('/tmp/queue')
        >>> job = enqueue(queue, create_entry('batches', 'insert', {'batch_number': 'B-100'}))
        >>> print(job['table'])
        batches
    """
    job = entry.to_job()
    queue.put(job)
    log_trace(f"Enqueued {entry.operation.value} on {entry.table} as {entry.id}")
    return job


def get_pending(queue: 'persistqueue.SQLiteAckQueue', timeout: float = 0) -> Optional[dict]:
    """
    Get next pending job from queue, marking it in progress.

    Args:
        queue: SQLiteAckQueue instance
        timeout: Seconds to wait for job (0 = non-blocking)

    Returns:
        Job dict, or None if timeout/empty
    """
    try:
        return queue.get(timeout=timeout)
    except Empty:
        return None


def ack_entry(queue: 'persistqueue.SQLiteAckQueue', job: dict):
    """
    Acknowledge successful replay (removes the job from the live queue).

    Args:
        queue: SQLiteAckQueue instance
        job: Job dict exactly as returned by get_pending
    """
    queue.ack(job)
    log_trace(f"Entry {job.get('id', '?')} acknowledged")


def nack_entry(queue: 'persistqueue.SQLiteAckQueue', job: dict):
    """
    Return job to ready state; it keeps its original queue position.

    Args:
        queue: SQLiteAckQueue instance
        job: Job dict exactly as returned by get_pending
    """
    queue.nack(job)
    log_trace(f"Entry {job.get('id', '?')} returned to queue for retry")


def fail_entry(queue: 'persistqueue.SQLiteAckQueue', job: dict):
    """
    Mark job as permanently failed (taken out of the live queue).

    Args:
        queue: SQLiteAckQueue instance
        job: Job dict exactly as returned by get_pending
    """
    queue.ack_failed(job)
    log_debug(f"Entry {job.get('id', '?')} marked as failed")


def _find_table(conn: sqlite3.Connection) -> Optional[str]:
    """Find the ack_queue table (persist-queue uses ack_queue_default by default)."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'ack_queue%'"
    )
    row = cursor.fetchone()
    return row[0] if row else None


def _db_path(queue_path: str) -> str:
    return os.path.join(queue_path, 'data.db')


def get_stats(queue_path: str) -> dict:
    """
    Get queue statistics by status.

    Queries SQLite database directly for status counts.

    Args:
        queue_path: Path to queue directory (contains data.db)

    Returns:
        Dict with status counts: {
            'pending': int,
            'in_progress': int,
            'completed': int,
            'failed': int
        }
    """
    stats = {
        'pending': 0,
        'in_progress': 0,
        'completed': 0,
        'failed': 0
    }

    db_path = _db_path(queue_path)
    if not os.path.exists(db_path):
        return stats

    conn = sqlite3.connect(db_path)
    try:
        table_name = _find_table(conn)
        if not table_name:
            return stats

        cursor = conn.execute(f'''
            SELECT status, COUNT(*) as count
            FROM {table_name}
            GROUP BY status
        ''')

        for status_code, count in cursor:
            if status_code in (STATUS_INITED, STATUS_READY):
                stats['pending'] += count
            elif status_code == STATUS_UNACK:
                stats['in_progress'] += count
            elif status_code == STATUS_ACKED:
                stats['completed'] += count
            elif status_code == STATUS_ACK_FAILED:
                stats['failed'] += count

        return stats

    finally:
        conn.close()


def list_pending_jobs(queue_path: str) -> list[dict]:
    """
    Get all live jobs (ready or in progress), oldest first.

    Rows that no longer unpickle are skipped with a warning.

    Args:
        queue_path: Path to queue directory (contains data.db)

    Returns:
        List of job dicts in insertion order
    """
    db_path = _db_path(queue_path)
    if not os.path.exists(db_path):
        return []

    conn = sqlite3.connect(db_path)
    try:
        table_name = _find_table(conn)
        if not table_name:
            return []

        placeholders = ','.join('?' * len(_LIVE_STATUSES))
        cursor = conn.execute(
            f"SELECT _id, data FROM {table_name} WHERE status IN ({placeholders}) ORDER BY _id ASC",
            _LIVE_STATUSES,
        )

        jobs = []
        for row_id, blob in cursor:
            try:
                jobs.append(pickle.loads(blob))
            except (pickle.UnpicklingError, EOFError, AttributeError, TypeError) as e:
                log_warn(f"Skipping unreadable queue row {row_id}: {e}")
        return jobs
    finally:
        conn.close()


def count_pending(queue_path: str) -> int:
    """Number of live jobs (ready or in progress)."""
    stats = get_stats(queue_path)
    return stats['pending'] + stats['in_progress']


def clear_pending_items(queue_path: str) -> int:
    """
    Clear all pending and stale in-progress items from queue.

    Deletes items with status 0 (inited), 1 (ready), or 2 (unack/in-progress).
    Does NOT delete completed (5) or failed (9) items.

    Args:
        queue_path: Path to queue directory (contains data.db)

    Returns:
        Number of items deleted
    """
    db_path = _db_path(queue_path)
    if not os.path.exists(db_path):
        return 0

    conn = sqlite3.connect(db_path)
    try:
        table_name = _find_table(conn)
        if not table_name:
            return 0

        cursor = conn.execute(
            f"DELETE FROM {table_name} WHERE status IN (0, 1, 2)"
        )
        deleted = cursor.rowcount
        conn.commit()
        return deleted
    finally:
        conn.close()


def delete_pending_item(queue_path: str, entry_id: str) -> bool:
    """
    Delete one live job by entry id.

    Args:
        queue_path: Path to queue directory (contains data.db)
        entry_id: QueuedEntry.id to discard

    Returns:
        True if a row was deleted
    """
    db_path = _db_path(queue_path)
    if not os.path.exists(db_path):
        return False

    conn = sqlite3.connect(db_path)
    try:
        table_name = _find_table(conn)
        if not table_name:
            return False

        cursor = conn.execute(f"SELECT _id, data FROM {table_name} WHERE status IN (0, 1, 2)")
        target = None
        for row_id, blob in cursor:
            try:
                job = pickle.loads(blob)
            except (pickle.UnpicklingError, EOFError, AttributeError, TypeError):
                continue
            if isinstance(job, dict) and job.get('id') == entry_id:
                target = row_id
                break

        if target is None:
            return False

        conn.execute(f"DELETE FROM {table_name} WHERE _id = ?", (target,))
        conn.commit()
        return True
    finally:
        conn.close()
