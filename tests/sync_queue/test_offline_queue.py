"""
Tests for sync_queue/offline_queue.py - OfflineQueue.

Uses a real SQLiteAckQueue in a temp directory and a mocked backend, so
ordering and removal are checked against actual storage.
"""

import logging
import sqlite3
import threading

import pytest
from unittest.mock import call, patch


def _fail(msg="HTTP 503: Service Unavailable"):
    from backend.exceptions import BackendTemporaryError
    return BackendTemporaryError(msg, status_code=503)


# =============================================================================
# add / get_all / get_count
# =============================================================================


class TestAdd:
    """Tests for add() and the read side."""

    def test_get_all_returns_fifo_order(self, offline_queue):
        entries = [offline_queue.add("batches", "insert", {"n": i}) for i in range(5)]

        assert [e.id for e in offline_queue.get_all()] == [e.id for e in entries]
        assert offline_queue.get_count() == 5

    def test_add_returns_entry(self, offline_queue, batch_payload):
        from sync_queue.models import Operation

        entry = offline_queue.add("batches", "insert", batch_payload)

        assert entry.table == "batches"
        assert entry.operation is Operation.INSERT
        assert entry.data == batch_payload
        assert offline_queue.get(entry.id) == entry

    def test_get_unknown_id_returns_none(self, offline_queue):
        assert offline_queue.get("nope") is None

    def test_invalid_operation_raises(self, offline_queue):
        with pytest.raises(ValueError):
            offline_queue.add("batches", "truncate", {})

        assert offline_queue.get_count() == 0

    def test_store_failure_keeps_entry_in_memory(self, offline_queue, mocker, caplog):
        mocker.patch.object(offline_queue.queue, "put", side_effect=sqlite3.OperationalError("disk full"))

        with caplog.at_level(logging.WARNING, logger="HatchSync"):
            entry = offline_queue.add("batches", "insert", {"n": 1})

        assert offline_queue.get_count() == 1
        view = offline_queue.get_entries()[0]
        assert view.entry.id == entry.id
        assert view.durable is False
        assert "in memory only" in caplog.text

    def test_memory_and_durable_entries_interleave_by_age(self, offline_queue):
        first = offline_queue.add("batches", "insert", {"n": 1})
        with patch.object(offline_queue.queue, "put", side_effect=OSError("read-only")):
            second = offline_queue.add("batches", "insert", {"n": 2})
        third = offline_queue.add("batches", "insert", {"n": 3})

        assert [e.id for e in offline_queue.get_all()] == [first.id, second.id, third.id]

    def test_has_pending(self, offline_queue):
        offline_queue.add("flocks", "update", {"id": "f-1", "flock_name": "North"})

        assert offline_queue.has_pending("flocks") is True
        assert offline_queue.has_pending("flocks", "f-1") is True
        assert offline_queue.has_pending("flocks", "f-2") is False
        assert offline_queue.has_pending("batches") is False


# =============================================================================
# sync_all
# =============================================================================


class TestSyncAll:
    """Tests for sync_all()."""

    def test_empty_queue_returns_zero_counts(self, offline_queue, mock_backend):
        result = offline_queue.sync_all()

        assert (result.success, result.failed) == (0, 0)
        assert result.skipped is False
        mock_backend.execute.assert_not_called()

    def test_batches_insert_scenario(self, offline_queue, mock_backend):
        offline_queue.add("batches", "insert", {"batch_number": "B-100"})
        assert offline_queue.get_count() == 1

        result = offline_queue.sync_all()

        mock_backend.execute.assert_called_once_with("batches", "insert", {"batch_number": "B-100"})
        assert result.success == 1
        assert offline_queue.get_count() == 0

    def test_partial_failure_removes_only_successes(self, offline_queue, mock_backend):
        """Backend accepts the first k of N and rejects the rest."""
        entries = [offline_queue.add("batches", "insert", {"n": i}) for i in range(5)]
        mock_backend.execute.side_effect = [[{"id": 1}], [{"id": 2}], _fail(), _fail(), _fail()]

        result = offline_queue.sync_all()

        assert result.as_dict() == {"success": 2, "failed": 3}
        assert offline_queue.get_count() == 3
        assert [e.id for e in offline_queue.get_all()] == [e.id for e in entries[2:]]

    def test_failed_entries_keep_position(self, offline_queue, mock_backend):
        a = offline_queue.add("batches", "insert", {"n": "a"})
        offline_queue.add("batches", "insert", {"n": "b"})
        c = offline_queue.add("batches", "insert", {"n": "c"})
        mock_backend.execute.side_effect = [_fail(), [{"id": 2}], _fail()]

        offline_queue.sync_all()
        assert [e.id for e in offline_queue.get_all()] == [a.id, c.id]

        mock_backend.execute.reset_mock(side_effect=True)
        mock_backend.execute.return_value = []
        offline_queue.sync_all()

        assert [c_.args[2]["n"] for c_ in mock_backend.execute.call_args_list] == ["a", "c"]
        assert offline_queue.get_count() == 0

    def test_failure_metadata_recorded(self, offline_queue, mock_backend):
        from sync_queue.models import EntryStatus

        offline_queue.add("batches", "insert", {"n": 1})
        mock_backend.execute.side_effect = _fail("HTTP 503: upstream down")

        offline_queue.sync_all()
        offline_queue.sync_all()

        view = offline_queue.get_entries()[0]
        assert view.status is EntryStatus.FAILED
        assert view.retry_count == 2
        assert view.error_message == "HTTP 503: upstream down"

    def test_success_clears_failure_metadata(self, offline_queue, mock_backend):
        entry = offline_queue.add("batches", "insert", {"n": 1})
        mock_backend.execute.side_effect = [_fail(), [{"id": 1}]]

        offline_queue.sync_all()
        offline_queue.sync_all()

        assert offline_queue.ledger.get(entry.id) is None

    def test_replay_preserves_order_across_operations(self, offline_queue, mock_backend):
        offline_queue.add("batches", "update", {"id": "x", "eggs_set": 100})
        offline_queue.add("batches", "insert", {"batch_number": "B-101"})
        offline_queue.add("batches", "delete", {"id": "y"})

        offline_queue.sync_all()

        assert mock_backend.execute.call_args_list == [
            call("batches", "update", {"id": "x", "eggs_set": 100}),
            call("batches", "insert", {"batch_number": "B-101"}),
            call("batches", "delete", {"id": "y"}),
        ]

    def test_memory_entries_synced_in_order(self, offline_queue, mock_backend):
        offline_queue.add("batches", "insert", {"n": 1})
        with patch.object(offline_queue.queue, "put", side_effect=sqlite3.OperationalError("locked")):
            offline_queue.add("batches", "insert", {"n": 2})
        offline_queue.add("batches", "insert", {"n": 3})

        result = offline_queue.sync_all()

        assert result.success == 3
        assert [c_.args[2]["n"] for c_ in mock_backend.execute.call_args_list] == [1, 2, 3]
        assert offline_queue.get_count() == 0

    def test_concurrent_sync_is_noop(self, offline_queue, blocking_backend):
        backend, started, release = blocking_backend
        offline_queue.add("batches", "insert", {"n": 1})

        results = []
        worker = threading.Thread(target=lambda: results.append(offline_queue.sync_all()))
        worker.start()
        assert started.wait(5.0)

        assert offline_queue.is_syncing is True
        second = offline_queue.sync_all()

        release.set()
        worker.join(5.0)

        assert second.skipped is True
        assert (second.success, second.failed) == (0, 0)
        assert backend.execute.call_count == 1
        assert results[0].success == 1
        assert offline_queue.is_syncing is False

    def test_requires_backend(self, queue_manager):
        from sync_queue.offline_queue import OfflineQueue

        queue = OfflineQueue(queue_manager)
        queue.add("batches", "insert", {})

        with pytest.raises(ValueError, match="No backend"):
            queue.sync_all()

    def test_backend_passed_per_call(self, queue_manager, mock_backend):
        from sync_queue.offline_queue import OfflineQueue

        queue = OfflineQueue(queue_manager)
        queue.add("batches", "insert", {})

        assert queue.sync_all(mock_backend).success == 1

    def test_storage_error_propagates_and_releases_guard(self, offline_queue, mocker):
        offline_queue.add("batches", "insert", {})
        mocker.patch.object(offline_queue.queue, "get", side_effect=sqlite3.OperationalError("disk I/O error"))

        with pytest.raises(sqlite3.OperationalError):
            offline_queue.sync_all()

        assert offline_queue.is_syncing is False

    def test_entry_retried_after_storage_error_mid_pass(self, offline_queue, mock_backend):
        entry = offline_queue.add("batches", "insert", {"batch_number": "B-1"})

        with patch("sync_queue.offline_queue.ack_entry", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(sqlite3.OperationalError):
                offline_queue.sync_all()

        assert offline_queue.get_count() == 1
        assert offline_queue.get(entry.id) is not None

        result = offline_queue.sync_all()

        assert (result.success, result.failed) == (1, 0)
        assert offline_queue.get_count() == 0
        assert mock_backend.execute.call_count == 2

    def test_storage_error_keeps_later_entries_in_order(self, offline_queue, mock_backend):
        first = offline_queue.add("batches", "insert", {"n": 1})
        second = offline_queue.add("batches", "insert", {"n": 2})
        mock_backend.execute.side_effect = [_fail(), [{"id": 1}]]

        with patch("sync_queue.offline_queue.ack_entry", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(sqlite3.OperationalError):
                offline_queue.sync_all()

        assert [e.id for e in offline_queue.get_all()] == [first.id, second.id]
        mock_backend.execute.side_effect = None

        result = offline_queue.sync_all()

        assert result.success == 2
        assert offline_queue.get_count() == 0

    def test_unreadable_job_is_failed_out(self, offline_queue, mock_backend):
        offline_queue.queue.put({"id": "broken"})
        offline_queue.add("batches", "insert", {"n": 1})

        result = offline_queue.sync_all()

        assert (result.success, result.failed) == (1, 1)
        assert offline_queue.get_count() == 0
        mock_backend.execute.assert_called_once()

    def test_warns_after_repeated_failures_without_cap(self, offline_queue, mock_backend, caplog):
        offline_queue.add("batches", "insert", {})
        mock_backend.execute.side_effect = _fail()

        with caplog.at_level(logging.WARNING, logger="HatchSync"):
            for _ in range(5):
                offline_queue.sync_all()

        assert "failed 5 times" in caplog.text
        assert offline_queue.get_count() == 1


# =============================================================================
# Retry cap / dead letters
# =============================================================================


class TestDeadLettering:
    """Tests for the optional max_sync_attempts policy."""

    @pytest.fixture
    def capped_queue(self, queue_manager, mock_backend):
        from sync_queue.offline_queue import OfflineQueue

        return OfflineQueue(queue_manager, backend=mock_backend, max_sync_attempts=2)

    def test_entry_dead_lettered_at_cap(self, capped_queue, mock_backend):
        entry = capped_queue.add("batches", "insert", {"n": 1})
        mock_backend.execute.side_effect = _fail()

        first = capped_queue.sync_all()
        assert (first.failed, first.dead_lettered) == (1, 0)
        assert capped_queue.get_count() == 1

        second = capped_queue.sync_all()
        assert (second.failed, second.dead_lettered) == (1, 1)
        assert capped_queue.get_count() == 0
        assert capped_queue.dlq.get_count() == 1
        assert capped_queue.ledger.get(entry.id) is None

    def test_dead_lettered_entry_can_be_requeued(self, capped_queue, mock_backend):
        from sync_queue.dlq_recovery import requeue_dead_letters

        capped_queue.add("batches", "insert", {"n": 1})
        mock_backend.execute.side_effect = _fail()
        capped_queue.sync_all()
        capped_queue.sync_all()

        result = requeue_dead_letters(capped_queue.dlq, capped_queue)

        assert result.recovered == 1
        assert capped_queue.dlq.get_count() == 0
        assert capped_queue.get(result.recovered_entry_ids[0]).data == {"n": 1}

    def test_uses_provided_dlq(self, queue_manager, mock_backend, mock_dlq):
        from sync_queue.offline_queue import OfflineQueue

        queue = OfflineQueue(queue_manager, backend=mock_backend, dlq=mock_dlq, max_sync_attempts=1)
        queue.add("batches", "insert", {})
        mock_backend.execute.side_effect = _fail()

        queue.sync_all()

        mock_dlq.add.assert_called_once()
        assert mock_dlq.add.call_args.args[2] == 1

    def test_cap_must_be_positive(self, queue_manager):
        from sync_queue.offline_queue import OfflineQueue

        with pytest.raises(ValueError):
            OfflineQueue(queue_manager, max_sync_attempts=0)


# =============================================================================
# sync_one / clear / discard
# =============================================================================


class TestMaintenance:
    """Tests for sync_one(), clear() and discard()."""

    def test_sync_one_reports_outcome(self, offline_queue, mock_backend):
        entry = offline_queue.add("batches", "insert", {})

        mock_backend.execute.side_effect = _fail()
        assert offline_queue.sync_one(entry) is False
        assert offline_queue.ledger.get(entry.id).retry_count == 1

        mock_backend.execute.side_effect = None
        assert offline_queue.sync_one(entry) is True
        assert offline_queue.ledger.get(entry.id) is None

    def test_clear_removes_everything(self, offline_queue, mock_backend):
        offline_queue.add("batches", "insert", {})
        offline_queue.add("batches", "insert", {})
        with patch.object(offline_queue.queue, "put", side_effect=OSError("full")):
            offline_queue.add("batches", "insert", {})
        mock_backend.execute.side_effect = _fail()
        offline_queue.sync_all()

        assert offline_queue.clear() == 3
        assert offline_queue.get_count() == 0
        assert len(offline_queue.ledger) == 0

    def test_discard_one_entry(self, offline_queue):
        keep = offline_queue.add("batches", "insert", {"n": 1})
        drop = offline_queue.add("batches", "insert", {"n": 2})

        assert offline_queue.discard(drop.id) is True
        assert offline_queue.discard(drop.id) is False
        assert [e.id for e in offline_queue.get_all()] == [keep.id]
