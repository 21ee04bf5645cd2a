"""
Data models for the offline write queue.

QueuedEntry is the unit of work: one pending insert/update/upsert/delete
against a named backend table. Entries are frozen once created; per-entry
failure bookkeeping lives in the AttemptLedger (sync_queue.attempts) and is
joined back in for display through EntryView.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ID_ALPHABET = string.ascii_lowercase + string.digits


class Operation(str, Enum):
    """Write operations the backend accepts for a table."""
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"


class EntryStatus(str, Enum):
    """Replay status derived from the attempt ledger."""
    PENDING = "pending"
    FAILED = "failed"


def generate_entry_id() -> str:
    """Millisecond timestamp plus a 9-char random suffix, e.g. '1718000000000-k3j9x0abc'."""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class QueuedEntry(BaseModel):
    """
    A single pending write operation.

    Fields:
        id: Unique identifier assigned at enqueue time
        table: Target backend table name
        operation: insert, update, upsert or delete
        data: Row payload; update/delete need an 'id' key naming the target row
        created_at: ISO-8601 UTC enqueue timestamp
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_entry_id)
    table: str
    operation: Operation
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=_utc_now_iso)

    @field_validator('table', mode='after')
    @classmethod
    def validate_table(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('table name is required')
        return v

    @property
    def target_id(self) -> Optional[Any]:
        """Row id for update/delete, or None."""
        return self.data.get('id')

    def to_job(self) -> dict:
        """Plain dict stored in the persistent queue."""
        return self.model_dump(mode='json')

    @classmethod
    def from_job(cls, job: dict) -> 'QueuedEntry':
        """Rebuild an entry from a dict read back from the persistent queue."""
        return cls.model_validate(job)


def create_entry(table: str, operation: str | Operation, data: dict) -> QueuedEntry:
    """
    Create a QueuedEntry with a fresh id and timestamp.

    Raises:
        ValueError: Unknown operation or empty table name
    """
    try:
        op = Operation(operation)
    except ValueError:
        valid = ', '.join(o.value for o in Operation)
        raise ValueError(f"Unsupported operation: {operation!r} (expected one of {valid})") from None
    return QueuedEntry(table=table, operation=op, data=dict(data))


@dataclass
class EntryView:
    """Entry joined with its ledger record, for listings and badges."""
    entry: QueuedEntry
    status: EntryStatus = EntryStatus.PENDING
    retry_count: int = 0
    error_message: Optional[str] = None
    durable: bool = True


@dataclass
class SyncResult:
    """
    Outcome of one sync_all() pass.

    Fields:
        success: Entries applied and removed
        failed: Entries that failed this pass (dead-lettered ones included)
        dead_lettered: Failed entries moved to the DLQ because of the retry cap
        skipped: True when another pass was already running and this call did nothing
    """
    success: int = 0
    failed: int = 0
    dead_lettered: int = 0
    skipped: bool = False

    @property
    def total(self) -> int:
        return self.success + self.failed

    def as_dict(self) -> dict:
        return {'success': self.success, 'failed': self.failed}
