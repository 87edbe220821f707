"""Data models for the database layer."""

from dataclasses import dataclass, field
from typing import Optional

from harvest_pro.utils.constants import (
    CRITICAL_RETRY_THRESHOLD,
    WARNING_RETRY_THRESHOLD,
)


@dataclass
class QueueEntry:
    id: str = ""
    type: str = ""
    payload: dict = field(default_factory=dict)
    timestamp: str = ""
    retry_count: int = 0
    last_error_code: str = ""
    last_error_message: str = ""
    # Insertion order within the live queue (not part of the entry identity)
    seq: Optional[int] = field(default=None, repr=False)

    @property
    def has_failed(self) -> bool:
        return self.retry_count > 0 or bool(self.last_error_code)

    @property
    def severity(self) -> str:
        return classify_severity(self.retry_count)


@dataclass
class DeadLetterEntry:
    id: str = ""
    type: str = ""
    payload: dict = field(default_factory=dict)
    timestamp: str = ""
    retry_count: int = 0
    failure_reason: str = ""
    error_code: str = ""
    moved_at: str = ""

    @property
    def severity(self) -> str:
        return classify_severity(self.retry_count)

    def to_queue_entry(self) -> QueueEntry:
        """Demote back to a fresh live-queue entry (retry count reset)."""
        return QueueEntry(
            id=self.id,
            type=self.type,
            payload=dict(self.payload),
            timestamp=self.timestamp,
            retry_count=0,
        )


def classify_severity(retry_count: int) -> str:
    """Severity band for a failed entry: critical, warning or recent."""
    if retry_count >= CRITICAL_RETRY_THRESHOLD:
        return "critical"
    if retry_count > WARNING_RETRY_THRESHOLD:
        return "warning"
    return "recent"


@dataclass
class Picker:
    id: str = ""
    picker_id: str = ""  # External badge / employee code
    name: str = ""
    current_row: int = 0
    total_buckets_today: int = 0
    hours: float = 0.0
    status: str = "active"  # active, inactive, archived, break, issue
    safety_verified: int = 0
    orchard_id: str = ""
    team_leader_id: Optional[str] = None
    checked_in_today: int = 0
    updated_at: Optional[str] = None

    @property
    def is_archived(self) -> bool:
        return self.status == "archived"

    @property
    def display_name(self) -> str:
        return self.name or self.picker_id or "(Unnamed)"


@dataclass
class ScannedBucket:
    id: str = ""
    picker_id: str = ""
    quality_grade: str = "A"  # A, B, C, reject
    timestamp: str = ""
    orchard_id: str = ""
    synced: int = 0
    scanned_by: str = ""
    row_number: Optional[int] = None


@dataclass
class HarvestSettings:
    orchard_id: str = ""
    piece_rate: float = 6.50
    min_wage_rate: float = 23.50
    min_buckets_per_hour: float = 3.6
    target_tons: float = 100.0
    variety: str = ""
    updated_at: str = ""

    def merged(self, changes: dict) -> "HarvestSettings":
        """Return a copy with the given editable fields replaced."""
        unknown = set(changes) - set(EDITABLE_SETTINGS_FIELDS)
        if unknown:
            raise ValueError(
                f"Unknown settings field(s): {', '.join(sorted(unknown))}"
            )
        values = {**self.__dict__, **changes}
        return HarvestSettings(**values)


EDITABLE_SETTINGS_FIELDS = (
    "piece_rate", "min_wage_rate", "min_buckets_per_hour",
    "target_tons", "variety",
)


@dataclass
class SyncConflict:
    id: str = ""
    table_name: str = ""
    record_id: str = ""
    local_updated_at: str = ""
    server_updated_at: str = ""
    local_values: dict = field(default_factory=dict)
    server_values: dict = field(default_factory=dict)
    resolution: str = "pending"  # pending, keep_local, keep_server, merged
    detected_at: str = ""
