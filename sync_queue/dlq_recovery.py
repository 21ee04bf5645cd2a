"""
Dead letter recovery: move dead-lettered entries back into the live queue.

Used after the cause of a failure is fixed (schema change deployed, auth
key rotated). Requeued entries get a fresh id and timestamp, so they join
the back of the queue, and a clean attempt history.
"""

from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING

from pydantic import ValidationError

from shared.log import create_logger
from sync_queue.models import QueuedEntry

if TYPE_CHECKING:
    from sync_queue.dlq import DeadLetterQueue
    from sync_queue.offline_queue import OfflineQueue

log_trace, log_debug, log_info, log_warn, log_error = create_logger("DLQRecovery")


@dataclass
class RecoveryResult:
    """
    Result of a DLQ requeue.

    Fields:
        total_dlq_entries: Dead letters considered
        recovered: Re-enqueued and removed from the DLQ
        skipped_missing: DLQ id not found
        failed: Stored entry unreadable (left in the DLQ)
        recovered_entry_ids: New queue ids of recovered entries
    """
    total_dlq_entries: int = 0
    recovered: int = 0
    skipped_missing: int = 0
    failed: int = 0
    recovered_entry_ids: List[str] = field(default_factory=list)


def requeue_dead_letters(
    dlq: 'DeadLetterQueue',
    queue: 'OfflineQueue',
    dlq_ids: Optional[List[int]] = None,
    error_types: Optional[List[str]] = None,
) -> RecoveryResult:
    """
    Re-enqueue dead letters, oldest first.

    Args:
        dlq: DeadLetterQueue to read from
        queue: OfflineQueue to add entries back to
        dlq_ids: Specific DLQ rows to requeue (default: all)
        error_types: Only requeue these error types, e.g. ["BackendTemporaryError"]

    Returns:
        RecoveryResult with counts

    Examples:
        >>> result = requeue_dead_letters(dlq, offline_queue, error_types=["BackendUnavailable"])
        >>> print(f"Requeued {result.recovered} entries")
    """
    if dlq_ids is None:
        rows = dlq.get_recent(limit=dlq.get_count())
        if error_types:
            rows = [r for r in rows if r['error_type'] in error_types]
        dlq_ids = sorted(r['id'] for r in rows)

    result = RecoveryResult(total_dlq_entries=len(dlq_ids))

    for dlq_id in dlq_ids:
        job = dlq.get_by_id(dlq_id)
        if job is None:
            result.skipped_missing += 1
            continue

        try:
            original = QueuedEntry.from_job(job)
        except ValidationError as e:
            log_warn(f"Dead letter {dlq_id} is unreadable, leaving it in place: {e}")
            result.failed += 1
            continue

        entry = queue.add(original.table, original.operation, dict(original.data))
        dlq.remove(dlq_id)
        result.recovered += 1
        result.recovered_entry_ids.append(entry.id)
        log_debug(f"Requeued dead letter {dlq_id} as {entry.id}")

    if result.recovered:
        log_info(f"Requeued {result.recovered} of {result.total_dlq_entries} dead letters")
    return result


__all__ = ['RecoveryResult', 'requeue_dead_letters']
