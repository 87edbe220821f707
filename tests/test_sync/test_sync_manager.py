"""Tests for the SyncManager queue drain."""

import pytest

from harvest_pro.config import Config
from harvest_pro.database.models import QueueEntry
from harvest_pro.errors import RemoteError, RemoteNetworkError
from harvest_pro.sync.sync_manager import SyncManager, categorize_error


@pytest.fixture
def manager(repo, remote, queue):
    return SyncManager(repo, remote, queue=queue)


def _seed(repo, entry_id, retry_count, make_scan):
    repo.insert_queue_entry(QueueEntry(
        id=entry_id, type="SCAN", payload=make_scan(),
        timestamp="2026-03-02T09:00:00+00:00", retry_count=retry_count,
    ))


class TestCategorizeError:

    @pytest.mark.parametrize("error,expected", [
        (RemoteNetworkError("offline"), "network"),
        (RemoteError("fk", code="23503", status=409), "validation"),
        (RemoteError("dup", code="23505", status=409), "validation"),
        (RemoteError("boom", status=500), "server"),
        (RemoteError("slow down", status=429), "server"),
        (ValueError("bad payload"), "validation"),
        (RemoteError("Failed to fetch"), "network"),
        (RemoteError("something odd", status=418), "unknown"),
    ])
    def test_categories(self, error, expected):
        assert categorize_error(error) == expected


class TestProcessQueue:

    def test_drains_in_fifo_order(self, manager, queue, remote, make_scan):
        ids = [queue.enqueue("SCAN", make_scan()).id for _ in range(3)]
        result = manager.process_queue()
        assert result.synced == 3
        assert result.remaining == 0
        assert [c[2] for c in remote.calls] == ids

    def test_offline_skips(self, manager, queue, remote, make_scan):
        queue.enqueue("SCAN", make_scan())
        remote.online = False
        result = manager.process_queue()
        assert result.skipped
        assert result.skipped_reason == "offline"
        assert result.remaining == 1
        assert remote.calls == []

    def test_second_pass_while_draining_is_skipped(self, repo, queue,
                                                   remote, make_scan):
        nested = []

        class ReentrantRemote(type(remote)):
            def upsert(self, table, row, on_conflict="id"):
                nested.append(manager.process_queue())
                return super().upsert(table, row, on_conflict)

        manager = SyncManager(repo, ReentrantRemote(), queue=queue)
        queue.enqueue("SCAN", make_scan())
        manager.process_queue()
        assert nested[0].skipped_reason == "busy"
        assert manager.is_draining is False

    def test_failure_increments_retry_and_continues(self, manager, queue,
                                                    remote, make_scan,
                                                    remote_error):
        a = queue.enqueue("SCAN", make_scan())
        b = queue.enqueue("SCAN", make_scan())
        c = queue.enqueue("SCAN", make_scan())
        remote.fail_with[b.id] = remote_error(code="23503", status=409)
        result = manager.process_queue()
        assert result.synced == 2
        assert result.failed == 1
        remaining = queue.get(b.id)
        assert remaining.retry_count == 1
        assert remaining.last_error_code == "23503"
        assert queue.get(a.id) is None and queue.get(c.id) is None

    def test_network_failure_stops_pass(self, manager, queue, remote,
                                        make_scan):
        a = queue.enqueue("SCAN", make_scan())
        b = queue.enqueue("SCAN", make_scan())
        c = queue.enqueue("SCAN", make_scan())
        remote.fail_with[b.id] = RemoteNetworkError("connection dropped")
        result = manager.process_queue()
        assert result.synced == 1
        assert result.failed == 1
        assert [e.id for e in queue.pending()] == [b.id, c.id]
        assert queue.get(c.id).retry_count == 0
        assert c.id not in [call[2] for call in remote.calls]

    def test_invalid_payload_counts_as_failure(self, manager, repo, queue):
        repo.insert_queue_entry(QueueEntry(
            id="bad", type="SCAN", payload={"picker_id": "p-1"},
            timestamp="t",
        ))
        result = manager.process_queue()
        assert result.failed == 1
        assert queue.get("bad").retry_count == 1

    def test_last_sync_recorded_only_on_success(self, manager, queue,
                                                make_scan):
        Config.LAST_SYNC_TIMESTAMP = ""
        manager.process_queue()
        assert Config.LAST_SYNC_TIMESTAMP == ""
        queue.enqueue("SCAN", make_scan())
        manager.process_queue()
        assert Config.LAST_SYNC_TIMESTAMP


class TestIdempotentSync:

    def test_lost_acknowledgement_leaves_one_remote_row(self, manager, queue,
                                                        remote, make_scan):
        entry = queue.enqueue("SCAN", make_scan())
        remote.ack_lost.add(entry.id)

        first = manager.process_queue()
        assert first.failed == 1
        assert queue.get(entry.id).retry_count == 1
        assert entry.id in remote.tables["bucket_records"]

        second = manager.process_queue()
        assert second.synced == 1
        assert queue.pending_count() == 0
        assert list(remote.tables["bucket_records"]) == [entry.id]


class TestRetryCeiling:

    def test_retry_counts_only_grow_until_dead_lettered(self, manager, queue,
                                                        remote, make_scan,
                                                        remote_error):
        Config.RETRY_CEILING = 4
        entry = queue.enqueue("SCAN", make_scan())
        remote.fail_with[entry.id] = remote_error(status=500)
        counts = []
        for _ in range(3):
            manager.process_queue()
            counts.append(queue.get(entry.id).retry_count)
        assert counts == [1, 2, 3]

        result = manager.process_queue()
        assert result.dead_lettered == 1
        assert queue.get(entry.id) is None
        assert manager.repo.get_dead_letter(entry.id).retry_count == 4

    def test_49_is_warning_then_50_moves(self, manager, repo, remote,
                                         make_scan, remote_error):
        _seed(repo, "e49", 49, make_scan)
        failures = manager.dead_letters.list_failures()
        assert [e.id for e in failures.warning] == ["e49"]

        remote.fail_with["e49"] = remote_error(status=503)
        result = manager.process_queue()
        assert result.dead_lettered == 1
        dead = repo.get_dead_letter("e49")
        assert dead.retry_count == 50
        assert dead.severity == "critical"
        assert repo.get_queue_entry("e49") is None

    def test_entry_at_ceiling_moved_without_remote_attempt(self, manager,
                                                           repo, remote,
                                                           make_scan):
        _seed(repo, "e50", 50, make_scan)
        result = manager.process_queue()
        assert result.dead_lettered == 1
        assert remote.calls == []
        assert repo.get_dead_letter("e50").error_code == "MAX_RETRIES"

    def test_fast_fail_dead_letters_validation_errors(self, manager, queue,
                                                      remote, make_scan,
                                                      remote_error):
        Config.FAST_FAIL_PERMANENT_ERRORS = True
        bad = queue.enqueue("SCAN", make_scan())
        slow = queue.enqueue("SCAN", make_scan())
        remote.fail_with[bad.id] = remote_error(code="23505", status=409)
        remote.fail_with[slow.id] = remote_error(status=500)
        result = manager.process_queue()
        assert result.dead_lettered == 1
        assert manager.repo.get_dead_letter(bad.id).retry_count == 1
        assert queue.get(slow.id).retry_count == 1

    def test_without_fast_fail_validation_errors_retry(self, manager, queue,
                                                       remote, make_scan,
                                                       remote_error):
        bad = queue.enqueue("SCAN", make_scan())
        remote.fail_with[bad.id] = remote_error(code="23505", status=409)
        result = manager.process_queue()
        assert result.dead_lettered == 0
        assert queue.get(bad.id).retry_count == 1


class TestStatus:

    def test_sync_status(self, manager, queue, make_scan):
        Config.DEVICE_ID = "tablet-1"
        queue.enqueue("SCAN", make_scan())
        status = manager.get_sync_status()
        assert status["online"] is True
        assert status["pending"] == 1
        assert status["pending_by_type"] == {"SCAN": 1}
        assert status["dead_letters"] == 0
        assert status["device_id"] == "tablet-1"
        assert status["retry_ceiling"] == 50
