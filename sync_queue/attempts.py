"""
Attempt ledger: failed-replay bookkeeping kept beside the queue.

Queued entries are immutable, so retry counts and the last error for each
entry are stored separately in attempts.json (written atomically). Records
are dropped when their entry syncs, is dead-lettered, or is cleared.
"""

import json
import os
import threading
import time
from dataclasses import dataclass, asdict
from typing import Optional

from shared.log import create_logger

_, log_debug, _, _, _ = create_logger("Attempts")


@dataclass
class AttemptRecord:
    """Failure history for one entry."""
    retry_count: int = 0
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    last_attempt_at: float = 0.0


class AttemptLedger:
    """
    Per-entry failure counts persisted to attempts.json.

    Args:
        data_dir: Directory for attempts.json, or None to keep records in memory only
    """

    STATE_FILE = 'attempts.json'

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir
        self.state_path = os.path.join(data_dir, self.STATE_FILE) if data_dir else None
        self._lock = threading.Lock()
        self._records: dict[str, AttemptRecord] = self._load()

    def _load(self) -> dict[str, AttemptRecord]:
        if not self.state_path or not os.path.exists(self.state_path):
            return {}
        try:
            with open(self.state_path, 'r') as f:
                data = json.load(f)
            return {entry_id: AttemptRecord(**record) for entry_id, record in data.items()}
        except (json.JSONDecodeError, TypeError, AttributeError, OSError) as e:
            log_debug(f"Failed to load attempt ledger, starting empty: {e}")
            return {}

    def _save(self) -> None:
        """Write atomically (write to temp, rename)."""
        if not self.state_path:
            return
        tmp_path = self.state_path + '.tmp'
        try:
            with open(tmp_path, 'w') as f:
                json.dump({k: asdict(v) for k, v in self._records.items()}, f, indent=2)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            log_debug(f"Failed to save attempt ledger: {e}")

    def record_failure(self, entry_id: str, error: Exception, now: Optional[float] = None) -> AttemptRecord:
        """
        Count one failed replay.

        Returns:
            The updated record
        """
        with self._lock:
            record = self._records.get(entry_id) or AttemptRecord()
            record.retry_count += 1
            record.error_message = str(error) or type(error).__name__
            record.error_type = type(error).__name__
            record.last_attempt_at = now if now is not None else time.time()
            self._records[entry_id] = record
            self._save()
            return AttemptRecord(**asdict(record))

    def get(self, entry_id: str) -> Optional[AttemptRecord]:
        with self._lock:
            record = self._records.get(entry_id)
            return AttemptRecord(**asdict(record)) if record else None

    def forget(self, entry_id: str) -> None:
        with self._lock:
            if self._records.pop(entry_id, None) is not None:
                self._save()

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._save()

    def __len__(self) -> int:
        return len(self._records)
