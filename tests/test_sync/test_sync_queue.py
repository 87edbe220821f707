"""Tests for the durable on-device SyncQueue."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from harvest_pro.config import Config
from harvest_pro.database.models import ScannedBucket
from harvest_pro.errors import StorageFullError, UnknownOperationError
from harvest_pro.sync.operations import ScanPayload


class TestEnqueue:

    def test_enqueue_dict_payload(self, queue, make_scan):
        entry = queue.enqueue("SCAN", make_scan())
        assert entry.id
        assert entry.retry_count == 0
        assert queue.get(entry.id).payload["picker_id"] == "p-1"

    def test_enqueue_typed_payload_with_explicit_id(self, queue):
        payload = ScanPayload(picker_id="p-1", orchard_id="o1",
                              quality_grade="B", timestamp="t")
        entry = queue.enqueue("SCAN", payload, entry_id="bucket-1")
        assert entry.id == "bucket-1"
        assert "row_number" not in queue.get("bucket-1").payload

    def test_ids_are_unique(self, queue, make_scan):
        ids = {queue.enqueue("SCAN", make_scan()).id for _ in range(20)}
        assert len(ids) == 20

    def test_invalid_payload_not_stored(self, queue, make_scan):
        with pytest.raises(ValueError):
            queue.enqueue("SCAN", make_scan(grade="Z"))
        with pytest.raises(UnknownOperationError):
            queue.enqueue("TELEPORT", {})
        assert queue.pending_count() == 0

    def test_storage_full_propagates(self, queue, make_scan):
        with patch.object(queue.repo, "insert_queue_entry",
                          side_effect=StorageFullError("full")):
            with pytest.raises(StorageFullError):
                queue.enqueue("SCAN", make_scan())

    def test_survives_reopen(self, db_path, queue, make_scan):
        from harvest_pro.database.connection import DatabaseConnection
        from harvest_pro.database.repository import Repository
        entry = queue.enqueue("SCAN", make_scan())
        reopened = Repository(DatabaseConnection(db_path))
        assert reopened.get_queue_entry(entry.id) is not None


class TestRetryCounters:

    def test_increment_is_monotonic(self, queue, make_scan):
        entry = queue.enqueue("SCAN", make_scan())
        counts = [queue.increment_retry(entry.id, "500", "boom")
                  for _ in range(5)]
        assert counts == [1, 2, 3, 4, 5]

    def test_reset(self, queue, make_scan):
        entry = queue.enqueue("SCAN", make_scan())
        queue.increment_retry(entry.id)
        assert queue.reset_retry(entry.id) is True
        assert queue.get(entry.id).retry_count == 0

    def test_max_retry_count(self, queue, make_scan):
        a = queue.enqueue("SCAN", make_scan())
        queue.enqueue("SCAN", make_scan())
        for _ in range(3):
            queue.increment_retry(a.id)
        assert queue.max_retry_count() == 3


class TestAcknowledge:

    def test_mark_synced_removes_and_flags_bucket(self, queue, make_scan):
        queue.repo.create_scanned_bucket(ScannedBucket(
            id="b1", picker_id="p-1", timestamp="t", orchard_id="o1",
        ))
        queue.enqueue("SCAN", make_scan(), entry_id="b1")
        assert queue.mark_synced("b1") is True
        assert queue.pending_count() == 0
        assert queue.repo.get_scanned_bucket("b1").synced == 1

    def test_pending_in_fifo_order(self, queue, make_scan):
        ids = [queue.enqueue("SCAN", make_scan()).id for _ in range(4)]
        assert [e.id for e in queue.pending()] == ids


class TestSummaryAndCleanup:

    def test_summary_includes_last_sync(self, queue, make_scan):
        Config.LAST_SYNC_TIMESTAMP = "2026-03-02T08:00:00+00:00"
        queue.enqueue("SCAN", make_scan())
        summary = queue.summary()
        assert summary["total"] == 1
        assert summary["by_type"] == {"SCAN": 1}
        assert summary["last_sync"] == "2026-03-02T08:00:00+00:00"

    def test_summary_last_sync_none_when_never(self, queue):
        Config.LAST_SYNC_TIMESTAMP = ""
        assert queue.summary()["last_sync"] is None

    def test_cleanup_synced_respects_retention(self, queue):
        now = datetime.now(timezone.utc)
        old = (now - timedelta(days=8)).isoformat()
        recent = (now - timedelta(days=1)).isoformat()
        for bucket_id, ts in (("old", old), ("recent", recent)):
            queue.repo.create_scanned_bucket(ScannedBucket(
                id=bucket_id, picker_id="p-1", timestamp=ts,
                orchard_id="o1", synced=1,
            ))
        assert queue.cleanup_synced() == 1
        assert queue.repo.get_scanned_bucket("recent") is not None
