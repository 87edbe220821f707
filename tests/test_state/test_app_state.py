"""Tests for AppState mutations, validation and signals."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from harvest_pro.database import repository as repository_module
from harvest_pro.database.models import HarvestSettings, SyncConflict
from harvest_pro.errors import (
    BucketRejectedError,
    RemoteNetworkError,
    StorageFullError,
)
from harvest_pro.state.app_state import AppState
from harvest_pro.sync.scheduler import SyncScheduler
from harvest_pro.sync.sync_manager import SyncManager

SHIFT_END = datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def state(qtbot, repo, queue, remote, crew):
    repo.save_harvest_settings(HarvestSettings(
        orchard_id="orch-1", piece_rate=6.50, min_wage_rate=23.50,
        updated_at="v1",
    ))
    remote.tables["harvest_settings"] = {
        "orch-1": {"orchard_id": "orch-1", "piece_rate": 6.50,
                   "min_wage_rate": 23.50, "updated_at": "v1"},
    }
    app_state = AppState(repo, queue, remote=remote, orchard_id="orch-1")
    app_state.set_crew(crew)
    return app_state


def _alerts_for(state, picker_id):
    return [a for a in state.alerts if a.details["picker_id"] == picker_id]


class TestCrew:

    def test_set_crew_caches_and_emits(self, qtbot, repo, queue, crew):
        app_state = AppState(repo, queue, orchard_id="orch-1")
        with qtbot.waitSignal(app_state.crew_changed):
            app_state.set_crew(crew)
        assert len(repo.get_pickers("orch-1")) == 3
        assert app_state.get_picker("p-2").name == "Ben"

    def test_loads_cached_crew_on_start(self, state, repo, queue):
        restored = AppState(repo, queue, orchard_id="orch-1")
        assert {p.id for p in restored.crew} == {"p-1", "p-2", "p-3"}
        assert restored.settings.updated_at == "v1"


class TestAddBucket:

    def test_accepted_scan_is_stored_and_queued(self, qtbot, state, queue,
                                                repo):
        with qtbot.waitSignal(state.buckets_changed):
            bucket = state.add_bucket("p-1", "B", scanned_by="runner-1",
                                      row_number=12)
        entry = queue.get(bucket.id)
        assert entry.type == "SCAN"
        assert entry.payload["picker_id"] == "p-1"
        assert entry.payload["row_number"] == 12
        assert repo.get_scanned_bucket(bucket.id).orchard_id == "orch-1"
        assert state.buckets[0].id == bucket.id

    def test_intelligence_counts_new_bucket(self, qtbot, state):
        with qtbot.waitSignal(state.intelligence_changed):
            state.add_bucket("p-1")
        slow = state.payroll.pickers[0]
        assert slow.buckets == 6
        assert slow.piece_earnings == 39.00

    @pytest.mark.parametrize("picker_id,reason", [
        ("p-3", "archived"),
        ("ghost", "Unknown picker"),
    ])
    def test_rejected_pickers(self, state, queue, repo, picker_id, reason):
        with pytest.raises(BucketRejectedError) as exc:
            state.add_bucket(picker_id)
        assert reason in exc.value.reason
        assert exc.value.picker_id == picker_id
        assert queue.pending_count() == 0
        assert repo.get_scanned_buckets() == []

    def test_not_checked_in_rejected(self, state, crew, queue):
        crew[1].checked_in_today = 0
        state.set_crew(crew)
        with pytest.raises(BucketRejectedError, match="not checked in"):
            state.add_bucket("p-2")
        assert queue.pending_count() == 0

    def test_clock_skew_limit(self, state, queue):
        state.set_clock_skew(-300)
        state.add_bucket("p-1")
        state.set_clock_skew(301)
        with pytest.raises(BucketRejectedError, match="Clock skew"):
            state.add_bucket("p-1")
        assert queue.pending_count() == 1

    def test_storage_full_records_nothing(self, state, queue, repo,
                                          monkeypatch):
        def disk_full(conn, bucket):
            raise sqlite3.OperationalError("database or disk is full")

        monkeypatch.setattr(repository_module, "_insert_bucket_row",
                            disk_full)
        with pytest.raises(StorageFullError):
            state.add_bucket("p-1")
        assert queue.pending_count() == 0
        assert repo.get_scanned_buckets() == []
        assert state.buckets == []

    def test_mark_synced(self, qtbot, state, repo):
        bucket = state.add_bucket("p-1")
        assert state.mark_synced(bucket.id) is True
        assert repo.get_scanned_bucket(bucket.id).synced == 1
        assert state.buckets[0].synced == 1
        assert state.payroll.pickers[0].buckets == 5
        assert state.mark_synced("ghost") is False


class TestIntelligence:

    def test_alerts_carry_picker_details(self, state):
        state.recalculate_intelligence(SHIFT_END)
        wage_alerts = [a for a in state.alerts
                       if a.type == "wage_below_minimum"]
        assert [a.details["picker_name"] for a in wage_alerts] == ["Aroha"]
        assert all(a.details["picker_id"] != "p-3" for a in state.alerts)
        assert state.payroll.date == "2026-03-02"


class TestUpdateSettings:

    def test_successful_update(self, qtbot, state, repo, remote):
        with qtbot.waitSignal(state.settings_changed):
            assert state.update_settings({"piece_rate": 7.00}) is True
        assert state.settings.piece_rate == 7.00
        assert repo.get_harvest_settings("orch-1").piece_rate == 7.00
        assert remote.tables["harvest_settings"]["orch-1"]["piece_rate"] == 7.00
        assert state.payroll.piece_rate == 7.00

    def test_losing_writer_loads_server_value(self, qtbot, state, repo,
                                              remote):
        remote.tables["harvest_settings"]["orch-1"].update(
            piece_rate=8.00, updated_at="v2",
        )
        with qtbot.waitSignal(state.settings_conflict) as blocker:
            assert state.update_settings({"piece_rate": 7.00}) is False

        conflict = blocker.args[0]
        assert isinstance(conflict, SyncConflict)
        assert conflict.server_updated_at == "v2"
        assert state.settings.piece_rate == 8.00
        assert state.settings.updated_at == "v2"
        assert repo.get_harvest_settings("orch-1").piece_rate == 8.00
        assert remote.tables["harvest_settings"]["orch-1"]["piece_rate"] == 8.00

    def test_remote_error_rolls_back(self, state, repo, remote):
        remote.fail_with["orch-1"] = RemoteNetworkError("offline")
        with pytest.raises(RemoteNetworkError):
            state.update_settings({"piece_rate": 7.00})
        assert state.settings.piece_rate == 6.50
        assert repo.get_harvest_settings("orch-1").piece_rate == 6.50

    def test_unknown_field_rejected(self, state):
        with pytest.raises(ValueError):
            state.update_settings({"orchard_id": "elsewhere"})
        assert state.settings.orchard_id == "orch-1"

    def test_without_remote_updates_locally(self, repo, queue, qtbot):
        app_state = AppState(repo, queue, orchard_id="orch-9")
        assert app_state.update_settings({"target_tons": 80.0}) is True
        assert repo.get_harvest_settings("orch-9").target_tons == 80.0

    def test_reload_settings(self, state, remote):
        remote.tables["harvest_settings"]["orch-1"]["min_wage_rate"] = 24.0
        assert state.reload_settings().min_wage_rate == 24.0


class TestBreaks:

    def test_without_breaks_alerts_stay_raised(self, state):
        state.recalculate_intelligence(SHIFT_END)
        messages = [a.message for a in _alerts_for(state, "p-2")]
        assert "Rest break overdue by 360 minutes" in messages
        assert "Meal break overdue by 240 minutes" in messages

    def test_recorded_breaks_clear_alerts(self, qtbot, state):
        with qtbot.waitSignal(state.intelligence_changed):
            state.record_break("p-2", "rest",
                               at=SHIFT_END - timedelta(hours=1))
        state.record_break("p-2", "meal", at=SHIFT_END - timedelta(hours=1))
        state.record_break("p-2", "hydration",
                           at=SHIFT_END - timedelta(minutes=10))

        state.recalculate_intelligence(SHIFT_END)
        assert _alerts_for(state, "p-2") == []
        assert state.breaks["p-2"]["meal"] == SHIFT_END - timedelta(hours=1)

    def test_rest_break_resets_consecutive_hours(self, state, crew):
        crew[1].hours = 11.0
        state.set_crew(crew)
        state.recalculate_intelligence(SHIFT_END)
        assert any(a.type == "excessive_hours"
                   for a in _alerts_for(state, "p-2"))

        state.record_break("p-2", "rest",
                           at=SHIFT_END - timedelta(minutes=30))
        state.recalculate_intelligence(SHIFT_END)
        assert not any(a.type == "excessive_hours"
                       for a in _alerts_for(state, "p-2"))

    def test_hydration_does_not_reset_consecutive_hours(self, state, crew):
        crew[1].hours = 11.0
        state.set_crew(crew)
        state.record_break("p-2", "hydration",
                           at=SHIFT_END - timedelta(minutes=5))
        state.recalculate_intelligence(SHIFT_END)
        assert any(a.type == "excessive_hours"
                   for a in _alerts_for(state, "p-2"))

    def test_rejects_unknown_type_and_picker(self, state):
        with pytest.raises(ValueError, match="break type"):
            state.record_break("p-1", "smoko")
        with pytest.raises(ValueError, match="Unknown picker"):
            state.record_break("ghost", "rest")
        assert state.breaks == {}


class TestSyncRefresh:

    def test_sync_pass_refreshes_buckets(self, qtbot, state, repo, remote,
                                         queue):
        bucket = state.add_bucket("p-1")
        assert state.payroll.pickers[0].buckets == 6

        scheduler = SyncScheduler(SyncManager(repo, remote, queue=queue),
                                  interval_seconds=60)
        state.attach_scheduler(scheduler)
        with qtbot.waitSignal(state.buckets_changed):
            scheduler.set_online(True)
        scheduler.stop()

        assert state.buckets[0].id == bucket.id
        assert state.buckets[0].synced == 1
        assert state.payroll.pickers[0].buckets == 5
