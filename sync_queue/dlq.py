"""
Dead letter queue for entries that exhausted their retry budget.

Only used when a retry cap (max_sync_attempts) is configured; without one,
failing entries stay in the live queue. Dead letters keep the full entry so
they can be inspected and requeued (see sync_queue.dlq_recovery).
"""

import json
import os
import sqlite3
import traceback
from contextlib import contextmanager
from typing import Optional

from shared.log import create_logger

log_trace, log_debug, log_info, log_warn, log_error = create_logger("DLQ")


class DeadLetterQueue:
    """
    SQLite-backed store of dead-lettered entries (dlq.db in data_dir).

    Args:
        data_dir: Directory that holds dlq.db
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self.db_path = os.path.join(data_dir, 'dlq.db')
        self._setup_schema()

    @contextmanager
    def _get_connection(self):
        """Yield a connection that commits on success and always closes."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _setup_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS dead_letters (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entry_id TEXT,
                    table_name TEXT,
                    operation TEXT,
                    entry_data TEXT NOT NULL,
                    error_type TEXT NOT NULL,
                    error_message TEXT,
                    stack_trace TEXT,
                    retry_count INTEGER DEFAULT 0,
                    failed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_failed_at ON dead_letters(failed_at)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_entry_id ON dead_letters(entry_id)')

    def add(self, job: dict, error: Exception, retry_count: int) -> int:
        """
        Store a failed entry with its error.

        Args:
            job: Entry job dict (QueuedEntry.to_job())
            error: The exception from the last replay
            retry_count: Failed replays so far

        Returns:
            DLQ row id
        """
        stack = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        with self._get_connection() as conn:
            cursor = conn.execute(
                '''
                INSERT INTO dead_letters
                    (entry_id, table_name, operation, entry_data, error_type,
                     error_message, stack_trace, retry_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    job.get('id'),
                    job.get('table'),
                    job.get('operation'),
                    json.dumps(job),
                    type(error).__name__,
                    str(error),
                    stack,
                    retry_count,
                ),
            )
            dlq_id = cursor.lastrowid
        log_warn(f"Entry {job.get('id')} dead-lettered after {retry_count} attempts: {type(error).__name__}")
        return dlq_id

    def get_recent(self, limit: int = 10) -> list[dict]:
        """Summaries of the most recent dead letters, newest first."""
        with self._get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                '''
                SELECT id, entry_id, table_name, operation, error_type,
                       error_message, retry_count, failed_at
                FROM dead_letters
                ORDER BY failed_at DESC, id DESC
                LIMIT ?
                ''',
                (limit,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_by_id(self, dlq_id: int) -> Optional[dict]:
        """Full entry job dict for a dead letter, or None."""
        with self._get_connection() as conn:
            cursor = conn.execute('SELECT entry_data FROM dead_letters WHERE id = ?', (dlq_id,))
            row = cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    def get_count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute('SELECT COUNT(*) FROM dead_letters').fetchone()[0]

    def get_error_summary(self) -> dict[str, int]:
        """Counts by error type, e.g. {'BackendPermanentError': 3}."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                'SELECT error_type, COUNT(*) FROM dead_letters GROUP BY error_type ORDER BY COUNT(*) DESC'
            )
            return {error_type: count for error_type, count in cursor.fetchall()}

    def remove(self, dlq_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute('DELETE FROM dead_letters WHERE id = ?', (dlq_id,))
            return cursor.rowcount > 0

    def delete_older_than(self, days: int = 30) -> int:
        """Drop dead letters older than the retention window."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM dead_letters WHERE failed_at < datetime('now', ?)",
                (f'-{days} days',),
            )
            deleted = cursor.rowcount
        if deleted:
            log_info(f"Removed {deleted} dead letters older than {days} days")
        return deleted
