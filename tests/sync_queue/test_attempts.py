"""
Tests for sync_queue/attempts.py - AttemptLedger.
"""

import json

import pytest


class TestAttemptLedger:
    """Tests for AttemptLedger."""

    def test_record_failure_counts(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        ledger = AttemptLedger(str(tmp_path))
        ledger.record_failure("e1", ValueError("bad row"), now=100.0)
        record = ledger.record_failure("e1", TimeoutError("slow"), now=200.0)

        assert record.retry_count == 2
        assert record.error_message == "slow"
        assert record.error_type == "TimeoutError"
        assert record.last_attempt_at == 200.0

    def test_empty_message_falls_back_to_type(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        record = AttemptLedger(str(tmp_path)).record_failure("e1", ConnectionError())

        assert record.error_message == "ConnectionError"

    def test_returned_record_is_a_copy(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        ledger = AttemptLedger(str(tmp_path))
        record = ledger.record_failure("e1", ValueError("x"))
        record.retry_count = 99

        assert ledger.get("e1").retry_count == 1

    def test_persists_across_instances(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        AttemptLedger(str(tmp_path)).record_failure("e1", ValueError("x"))

        reloaded = AttemptLedger(str(tmp_path))

        assert reloaded.get("e1").retry_count == 1
        assert json.loads((tmp_path / "attempts.json").read_text())["e1"]["retry_count"] == 1

    def test_forget_and_clear(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        ledger = AttemptLedger(str(tmp_path))
        ledger.record_failure("e1", ValueError("x"))
        ledger.record_failure("e2", ValueError("y"))

        ledger.forget("e1")
        assert ledger.get("e1") is None
        assert len(ledger) == 1

        ledger.clear()
        assert len(ledger) == 0
        assert AttemptLedger(str(tmp_path)).get("e2") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        (tmp_path / "attempts.json").write_text("{not json")

        assert len(AttemptLedger(str(tmp_path))) == 0

    def test_memory_only_without_data_dir(self, tmp_path):
        from sync_queue.attempts import AttemptLedger

        ledger = AttemptLedger()
        ledger.record_failure("e1", ValueError("x"))

        assert ledger.get("e1").retry_count == 1
        assert not (tmp_path / "attempts.json").exists()
