"""AppState: single owner of the crew, bucket, settings and intelligence slices.

All mutations go through methods on this class. Interested views connect
to the Qt signals instead of polling; each signal fires after the slice it
names has been replaced.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from harvest_pro.config import Config
from harvest_pro.database.models import HarvestSettings, Picker, ScannedBucket
from harvest_pro.database.repository import Repository
from harvest_pro.errors import BucketRejectedError
from harvest_pro.payroll.calculator import PayrollSummary, calculate_payroll
from harvest_pro.payroll.compliance import (
    ComplianceInput,
    ComplianceViolation,
    check_picker_compliance,
)
from harvest_pro.sync.operations import ScanPayload
from harvest_pro.sync.optimistic_lock import (
    update_without_lock,
    with_optimistic_lock,
)
from harvest_pro.sync.sync_queue import SyncQueue
from harvest_pro.utils.constants import BREAK_TYPES

from .optimistic import optimistic_update

logger = logging.getLogger(__name__)


class AppState(QObject):
    """In-memory application state backed by the local database."""

    crew_changed = Signal()
    buckets_changed = Signal()
    queue_changed = Signal(int)
    settings_changed = Signal(object)
    settings_conflict = Signal(object)
    intelligence_changed = Signal()

    def __init__(self, repo: Repository, sync_queue: SyncQueue,
                 remote=None, orchard_id: str = "", parent=None):
        super().__init__(parent)
        self.repo = repo
        self.sync_queue = sync_queue
        self.remote = remote
        self.orchard_id = orchard_id

        self.crew: list[Picker] = repo.get_pickers(orchard_id or None)
        self.buckets: list[ScannedBucket] = repo.get_scanned_buckets()
        self.settings: HarvestSettings = (
            repo.get_harvest_settings(orchard_id) or HarvestSettings(
                orchard_id=orchard_id,
                piece_rate=Config.DEFAULT_PIECE_RATE,
                min_wage_rate=Config.DEFAULT_MIN_WAGE_RATE,
            )
        )
        self.alerts: list[ComplianceViolation] = []
        self.payroll: Optional[PayrollSummary] = None
        self.clock_skew_seconds: float = 0.0
        # picker id -> break type -> when the last break of that type began
        self.breaks: dict[str, dict[str, datetime]] = {}

    # ── Crew ────────────────────────────────────────────────────

    def set_crew(self, pickers: list[Picker]):
        """Replace the crew roster and cache it locally."""
        for picker in pickers:
            self.repo.save_picker(picker)
        self.crew = list(pickers)
        self.crew_changed.emit()
        self.recalculate_intelligence()

    def get_picker(self, picker_id: str) -> Optional[Picker]:
        return next((p for p in self.crew if p.id == picker_id), None)

    def set_clock_skew(self, seconds: float):
        """Record the device clock offset against the server."""
        self.clock_skew_seconds = seconds
        if abs(seconds) > Config.MAX_CLOCK_SKEW_SECONDS:
            logger.warning(
                f"Clock skew {seconds:.0f}s exceeds "
                f"{Config.MAX_CLOCK_SKEW_SECONDS}s, scans will be rejected"
            )

    # ── Buckets ─────────────────────────────────────────────────

    def _reject(self, picker_id: str, reason: str):
        logger.error(f"Rejected bucket for picker {picker_id}: {reason}")
        raise BucketRejectedError(reason, picker_id)

    def add_bucket(self, picker_id: str, quality_grade: str = "A",
                   orchard_id: str = "", scanned_by: str = "",
                   row_number: Optional[int] = None) -> ScannedBucket:
        """Record a scanned bucket and queue it for sync.

        Raises BucketRejectedError (nothing is stored or queued) when the
        picker is unknown, archived or not checked in today, or when the
        device clock is too far off the server's. A StorageFullError
        likewise leaves neither the queue entry nor the bucket behind.
        """
        picker = self.get_picker(picker_id)
        if picker is None:
            self._reject(picker_id, "Unknown picker")
        if picker.is_archived:
            self._reject(picker_id, "Picker is archived")
        if not picker.checked_in_today:
            self._reject(picker_id, "Picker is not checked in today")
        if abs(self.clock_skew_seconds) > Config.MAX_CLOCK_SKEW_SECONDS:
            self._reject(
                picker_id,
                f"Clock skew {self.clock_skew_seconds:.0f}s exceeds "
                f"{Config.MAX_CLOCK_SKEW_SECONDS}s",
            )

        bucket = ScannedBucket(
            id=str(uuid.uuid4()),
            picker_id=picker_id,
            quality_grade=quality_grade,
            timestamp=datetime.now(timezone.utc).isoformat(),
            orchard_id=orchard_id or picker.orchard_id or self.orchard_id,
            synced=0,
            scanned_by=scanned_by,
            row_number=row_number,
        )
        payload = ScanPayload(
            picker_id=bucket.picker_id,
            orchard_id=bucket.orchard_id,
            quality_grade=bucket.quality_grade,
            timestamp=bucket.timestamp,
            scanned_by=bucket.scanned_by,
            row_number=bucket.row_number,
        )
        self.sync_queue.enqueue_scan(payload, bucket)
        logger.info(f"Bucket {bucket.id} scanned for {picker.display_name}")

        self.buckets = [bucket] + self.buckets
        self.buckets_changed.emit()
        self.queue_changed.emit(self.sync_queue.pending_count())
        self.recalculate_intelligence()
        return bucket

    def mark_synced(self, bucket_id: str) -> bool:
        if not self.repo.mark_bucket_synced(bucket_id):
            return False
        self.buckets = [
            ScannedBucket(**{**b.__dict__, "synced": 1})
            if b.id == bucket_id else b
            for b in self.buckets
        ]
        self.buckets_changed.emit()
        self.queue_changed.emit(self.sync_queue.pending_count())
        self.recalculate_intelligence()
        return True

    # ── Intelligence ────────────────────────────────────────────

    def recalculate_intelligence(self, now: Optional[datetime] = None):
        """Recompute payroll and compliance alerts from scratch."""
        now = now or datetime.now(timezone.utc)
        counts = self.repo.get_unsynced_bucket_counts()
        self.payroll = calculate_payroll(
            self.crew, self.settings, counts, date=now.date().isoformat()
        )

        alerts = []
        for pay in self.payroll.pickers:
            minutes = int(pay.hours * 60)
            work_start = now - timedelta(minutes=minutes)
            breaks = self.breaks.get(pay.picker_id, {})
            rest = breaks.get("rest")
            meal = breaks.get("meal")
            # Rest and meal breaks end a stretch of work; hydration does not
            stretch_start = max(
                [t for t in (rest, meal) if t is not None] + [work_start]
            )
            consecutive = max(
                0, int((now - stretch_start).total_seconds() // 60)
            )
            status = check_picker_compliance(ComplianceInput(
                picker_id=pay.picker_id,
                bucket_count=pay.buckets,
                hours_worked=pay.hours,
                work_start=work_start,
                consecutive_minutes_worked=consecutive,
                total_minutes_today=minutes,
                last_rest_break_at=rest,
                last_meal_break_at=meal,
                last_hydration_at=breaks.get("hydration"),
                piece_rate=self.settings.piece_rate,
                min_wage_rate=self.settings.min_wage_rate,
            ), now)
            for violation in status.violations:
                violation.details.update(picker_id=pay.picker_id,
                                         picker_name=pay.name)
                alerts.append(violation)
        self.alerts = alerts
        self.intelligence_changed.emit()

    def record_break(self, picker_id: str, break_type: str,
                     at: Optional[datetime] = None) -> datetime:
        """Record that a picker started a rest, meal or hydration break."""
        if break_type not in BREAK_TYPES:
            raise ValueError(f"Unknown break type: {break_type}")
        if self.get_picker(picker_id) is None:
            raise ValueError(f"Unknown picker: {picker_id}")
        at = at or datetime.now(timezone.utc)
        self.breaks.setdefault(picker_id, {})[break_type] = at
        logger.info(f"Recorded {break_type} break for {picker_id} at "
                    f"{at.isoformat()}")
        self.recalculate_intelligence()
        return at

    @Slot(dict)
    def on_sync_finished(self, result: dict):
        """Reload buckets the sync pass flagged as synced, then recompute."""
        self.buckets = self.repo.get_scanned_buckets()
        self.buckets_changed.emit()
        self.queue_changed.emit(self.sync_queue.pending_count())
        self.recalculate_intelligence()

    def attach_scheduler(self, scheduler):
        """Refresh this state after every pass ``scheduler`` runs."""
        scheduler.sync_finished.connect(self.on_sync_finished)

    # ── Settings ────────────────────────────────────────────────

    def _set_settings(self, settings: HarvestSettings):
        self.settings = settings
        self.repo.save_harvest_settings(settings)
        self.settings_changed.emit(settings)

    def update_settings(self, changes: dict) -> bool:
        """Change harvest settings locally, then write them to the server.

        The server write is a compare-and-swap on ``updated_at``. Returns
        False when another device won the race; the server's values are
        then loaded and ``settings_conflict`` is emitted. Remote errors roll
        the local change back and propagate.
        """
        previous = self.settings
        updated = previous.merged(changes)

        def push():
            if self.remote is None:
                return True
            if previous.updated_at:
                result = with_optimistic_lock(
                    self.remote, self.repo, "harvest_settings",
                    self.orchard_id, previous.updated_at, changes,
                    key="orchard_id",
                )
            else:
                result = update_without_lock(
                    self.remote, "harvest_settings", self.orchard_id,
                    changes, key="orchard_id",
                )
            if result.success:
                if result.data and result.data.get("updated_at"):
                    self._set_settings(HarvestSettings(**{
                        **updated.__dict__,
                        "updated_at": str(result.data["updated_at"]),
                    }))
                logger.info(f"Harvest settings updated: {sorted(changes)}")
                return True

            if result.data:
                self._set_settings(self._settings_from_row(result.data))
            else:
                self._set_settings(previous)
            if result.conflict is not None:
                self.settings_conflict.emit(result.conflict)
            return False

        ok = optimistic_update(
            apply=lambda: self._set_settings(updated),
            remote_call=push,
            rollback=lambda: self._set_settings(previous),
        )
        self.recalculate_intelligence()
        return ok

    def reload_settings(self) -> HarvestSettings:
        """Replace local settings with the server's copy."""
        rows = self.remote.select("harvest_settings",
                                  {"orchard_id": self.orchard_id})
        if rows:
            self._set_settings(self._settings_from_row(rows[0]))
            self.recalculate_intelligence()
        return self.settings

    def _settings_from_row(self, row: dict) -> HarvestSettings:
        known = {k: row[k] for k in HarvestSettings.__dataclass_fields__
                 if k in row and row[k] is not None}
        known["orchard_id"] = self.orchard_id
        known["updated_at"] = str(known.get("updated_at", ""))
        return HarvestSettings(**{**self.settings.__dict__, **known})
