"""Repository layer: all CRUD operations and queries."""

import json
from typing import Optional

from .connection import DatabaseConnection
from .models import (
    DeadLetterEntry,
    HarvestSettings,
    Picker,
    QueueEntry,
    ScannedBucket,
    SyncConflict,
)


def _queue_entry_from_row(row) -> QueueEntry:
    data = dict(row)
    data["payload"] = json.loads(data.get("payload") or "{}")
    return QueueEntry(**data)


def _dead_letter_from_row(row) -> DeadLetterEntry:
    data = dict(row)
    data["payload"] = json.loads(data.get("payload") or "{}")
    return DeadLetterEntry(**data)


def _conflict_from_row(row) -> SyncConflict:
    data = dict(row)
    data["local_values"] = json.loads(data.get("local_values") or "{}")
    data["server_values"] = json.loads(data.get("server_values") or "{}")
    return SyncConflict(**data)


def _insert_queue_row(conn, entry: QueueEntry) -> int:
    cursor = conn.execute(
        "INSERT INTO sync_queue "
        "(id, type, payload, timestamp, retry_count, "
        " last_error_code, last_error_message) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (entry.id, entry.type, json.dumps(entry.payload),
         entry.timestamp, entry.retry_count,
         entry.last_error_code, entry.last_error_message),
    )
    return cursor.lastrowid


def _insert_bucket_row(conn, bucket: ScannedBucket):
    conn.execute(
        "INSERT INTO scanned_buckets "
        "(id, picker_id, quality_grade, timestamp, orchard_id, "
        " synced, scanned_by, row_number) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (bucket.id, bucket.picker_id, bucket.quality_grade,
         bucket.timestamp, bucket.orchard_id, bucket.synced,
         bucket.scanned_by, bucket.row_number),
    )


class Repository:
    """Provides all database operations for the application."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Sync queue ──────────────────────────────────────────────

    def insert_queue_entry(self, entry: QueueEntry) -> int:
        """Append an entry to the live queue. Returns its queue position."""
        with self.db.get_connection() as conn:
            return _insert_queue_row(conn, entry)

    def record_scan(self, entry: QueueEntry, bucket: ScannedBucket) -> int:
        """Write a SCAN queue entry and its local bucket row together.

        Both rows commit or neither does. Returns the queue position.
        """
        with self.db.get_connection() as conn:
            seq = _insert_queue_row(conn, entry)
            _insert_bucket_row(conn, bucket)
            return seq

    def get_queue_entries(self) -> list[QueueEntry]:
        """All live entries in insertion (FIFO) order."""
        rows = self.db.execute("SELECT * FROM sync_queue ORDER BY seq")
        return [_queue_entry_from_row(r) for r in rows]

    def get_queue_entry(self, entry_id: str) -> Optional[QueueEntry]:
        rows = self.db.execute(
            "SELECT * FROM sync_queue WHERE id = ?", (entry_id,)
        )
        return _queue_entry_from_row(rows[0]) if rows else None

    def get_failed_queue_entries(self) -> list[QueueEntry]:
        """Live entries that have failed at least once."""
        rows = self.db.execute(
            "SELECT * FROM sync_queue "
            "WHERE retry_count > 0 OR last_error_code != '' "
            "ORDER BY seq"
        )
        return [_queue_entry_from_row(r) for r in rows]

    def delete_queue_entry(self, entry_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_queue WHERE id = ?", (entry_id,)
            )
            return cursor.rowcount > 0

    def increment_queue_retry(self, entry_id: str, error_code: str = "",
                              error_message: str = "") -> int:
        """Bump an entry's retry count and record the failure.

        Returns the new retry count.
        """
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sync_queue SET retry_count = retry_count + 1, "
                "last_error_code = ?, last_error_message = ? WHERE id = ?",
                (error_code, error_message, entry_id),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Queue entry {entry_id} not found")
            row = conn.execute(
                "SELECT retry_count FROM sync_queue WHERE id = ?",
                (entry_id,),
            ).fetchone()
            return row["retry_count"]

    def reset_queue_retry(self, entry_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sync_queue SET retry_count = 0, "
                "last_error_code = '', last_error_message = '' WHERE id = ?",
                (entry_id,),
            )
            return cursor.rowcount > 0

    def get_queue_count(self) -> int:
        rows = self.db.execute("SELECT COUNT(*) AS cnt FROM sync_queue")
        return rows[0]["cnt"] if rows else 0

    def get_queue_summary(self) -> dict:
        """Per-type counts plus retry and age stats for the live queue."""
        with self.db.get_connection() as conn:
            by_type = {
                r["type"]: r["cnt"] for r in conn.execute(
                    "SELECT type, COUNT(*) AS cnt FROM sync_queue "
                    "GROUP BY type"
                ).fetchall()
            }
            stats = conn.execute(
                "SELECT COUNT(*) AS total, "
                "COALESCE(MAX(retry_count), 0) AS max_retry, "
                "MIN(timestamp) AS oldest FROM sync_queue"
            ).fetchone()
        return {
            "total": stats["total"],
            "by_type": by_type,
            "max_retry": stats["max_retry"],
            "oldest_timestamp": stats["oldest"],
        }

    def delete_queue_entries_from_retry(self, threshold: int) -> int:
        """Delete live entries with retry_count >= threshold."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_queue WHERE retry_count >= ?",
                (threshold,),
            )
            return cursor.rowcount

    def clear_failed_queue_entries(self) -> int:
        """Delete every live entry that has failed at least once."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_queue "
                "WHERE retry_count > 0 OR last_error_code != ''"
            )
            return cursor.rowcount

    def clear_queue(self) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM sync_queue")
            return cursor.rowcount

    # ── Dead-letter queue ───────────────────────────────────────

    def move_to_dead_letter(self, entry_id: str, error_code: str,
                            failure_reason: str,
                            moved_at: str) -> DeadLetterEntry:
        """Relocate a live entry to the dead-letter store atomically.

        The retry count is preserved as it was at the time of the move.
        """
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_queue WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                raise ValueError(f"Queue entry {entry_id} not found")
            entry = _queue_entry_from_row(row)
            conn.execute(
                "INSERT OR REPLACE INTO dead_letter_queue "
                "(id, type, payload, timestamp, retry_count, "
                " failure_reason, error_code, moved_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (entry.id, entry.type, json.dumps(entry.payload),
                 entry.timestamp, entry.retry_count,
                 failure_reason, error_code, moved_at),
            )
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))
        return DeadLetterEntry(
            id=entry.id,
            type=entry.type,
            payload=entry.payload,
            timestamp=entry.timestamp,
            retry_count=entry.retry_count,
            failure_reason=failure_reason,
            error_code=error_code,
            moved_at=moved_at,
        )

    def get_dead_letters(self) -> list[DeadLetterEntry]:
        rows = self.db.execute(
            "SELECT * FROM dead_letter_queue ORDER BY moved_at, id"
        )
        return [_dead_letter_from_row(r) for r in rows]

    def get_dead_letter(self, entry_id: str) -> Optional[DeadLetterEntry]:
        rows = self.db.execute(
            "SELECT * FROM dead_letter_queue WHERE id = ?", (entry_id,)
        )
        return _dead_letter_from_row(rows[0]) if rows else None

    def delete_dead_letter(self, entry_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM dead_letter_queue WHERE id = ?", (entry_id,)
            )
            return cursor.rowcount > 0

    def requeue_dead_letter(self, entry_id: str) -> QueueEntry:
        """Move a dead-letter entry back into the live queue.

        The entry keeps its id, type, payload and timestamp; its retry
        count is reset to 0 and it joins the back of the queue.
        """
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM dead_letter_queue WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                raise ValueError(f"Dead-letter entry {entry_id} not found")
            entry = _dead_letter_from_row(row).to_queue_entry()
            conn.execute(
                "DELETE FROM dead_letter_queue WHERE id = ?", (entry_id,)
            )
            # A stale live copy must not survive alongside the requeued one
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))
            cursor = conn.execute(
                "INSERT INTO sync_queue "
                "(id, type, payload, timestamp, retry_count) "
                "VALUES (?, ?, ?, ?, 0)",
                (entry.id, entry.type, json.dumps(entry.payload),
                 entry.timestamp),
            )
            entry.seq = cursor.lastrowid
        return entry

    def get_dead_letter_count(self) -> int:
        rows = self.db.execute(
            "SELECT COUNT(*) AS cnt FROM dead_letter_queue"
        )
        return rows[0]["cnt"] if rows else 0

    def delete_dead_letters_from_retry(self, threshold: int) -> int:
        """Delete dead-letter entries with retry_count >= threshold."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM dead_letter_queue WHERE retry_count >= ?",
                (threshold,),
            )
            return cursor.rowcount

    def clear_dead_letters(self) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM dead_letter_queue")
            return cursor.rowcount

    # ── Pickers ─────────────────────────────────────────────────

    def save_picker(self, picker: Picker):
        """Insert or replace a cached picker row."""
        with self.db.get_connection() as conn:
            conn.execute(
                """INSERT INTO pickers
                    (id, picker_id, name, current_row, total_buckets_today,
                     hours, status, safety_verified, orchard_id,
                     team_leader_id, checked_in_today, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    picker_id = excluded.picker_id,
                    name = excluded.name,
                    current_row = excluded.current_row,
                    total_buckets_today = excluded.total_buckets_today,
                    hours = excluded.hours,
                    status = excluded.status,
                    safety_verified = excluded.safety_verified,
                    orchard_id = excluded.orchard_id,
                    team_leader_id = excluded.team_leader_id,
                    checked_in_today = excluded.checked_in_today,
                    updated_at = CURRENT_TIMESTAMP""",
                (picker.id, picker.picker_id, picker.name,
                 picker.current_row, picker.total_buckets_today,
                 picker.hours, picker.status, picker.safety_verified,
                 picker.orchard_id, picker.team_leader_id,
                 picker.checked_in_today),
            )

    def get_picker(self, picker_id: str) -> Optional[Picker]:
        rows = self.db.execute(
            "SELECT * FROM pickers WHERE id = ?", (picker_id,)
        )
        return Picker(**dict(rows[0])) if rows else None

    def get_pickers(self, orchard_id: Optional[str] = None,
                    include_archived: bool = True) -> list[Picker]:
        sql = "SELECT * FROM pickers WHERE 1 = 1"
        params: list = []
        if orchard_id:
            sql += " AND orchard_id = ?"
            params.append(orchard_id)
        if not include_archived:
            sql += " AND status != 'archived'"
        rows = self.db.execute(sql + " ORDER BY name", tuple(params))
        return [Picker(**dict(r)) for r in rows]

    def set_picker_status(self, picker_id: str, status: str):
        from harvest_pro.utils.constants import PICKER_STATUSES
        if status not in PICKER_STATUSES:
            raise ValueError(f"Invalid picker status: {status}")
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE pickers SET status = ?, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (status, picker_id),
            )

    # ── Scanned buckets ─────────────────────────────────────────

    def create_scanned_bucket(self, bucket: ScannedBucket):
        with self.db.get_connection() as conn:
            _insert_bucket_row(conn, bucket)

    def get_scanned_bucket(self, bucket_id: str) -> Optional[ScannedBucket]:
        rows = self.db.execute(
            "SELECT * FROM scanned_buckets WHERE id = ?", (bucket_id,)
        )
        return ScannedBucket(**dict(rows[0])) if rows else None

    def get_scanned_buckets(self, synced: Optional[bool] = None
                            ) -> list[ScannedBucket]:
        sql = "SELECT * FROM scanned_buckets"
        params: tuple = ()
        if synced is not None:
            sql += " WHERE synced = ?"
            params = (1 if synced else 0,)
        rows = self.db.execute(sql + " ORDER BY timestamp DESC", params)
        return [ScannedBucket(**dict(r)) for r in rows]

    def mark_bucket_synced(self, bucket_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE scanned_buckets SET synced = 1 WHERE id = ?",
                (bucket_id,),
            )
            return cursor.rowcount > 0

    def get_unsynced_bucket_counts(self) -> dict[str, int]:
        """Locally scanned, not-yet-synced buckets per picker."""
        rows = self.db.execute(
            "SELECT picker_id, COUNT(*) AS cnt FROM scanned_buckets "
            "WHERE synced = 0 GROUP BY picker_id"
        )
        return {r["picker_id"]: r["cnt"] for r in rows}

    def delete_synced_buckets_before(self, iso_threshold: str) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM scanned_buckets "
                "WHERE synced = 1 AND timestamp < ?",
                (iso_threshold,),
            )
            return cursor.rowcount

    # ── Harvest settings ────────────────────────────────────────

    def get_harvest_settings(self, orchard_id: str
                             ) -> Optional[HarvestSettings]:
        rows = self.db.execute(
            "SELECT * FROM harvest_settings WHERE orchard_id = ?",
            (orchard_id,),
        )
        return HarvestSettings(**dict(rows[0])) if rows else None

    def save_harvest_settings(self, settings: HarvestSettings):
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO harvest_settings "
                "(orchard_id, piece_rate, min_wage_rate, "
                " min_buckets_per_hour, target_tons, variety, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (settings.orchard_id, settings.piece_rate,
                 settings.min_wage_rate, settings.min_buckets_per_hour,
                 settings.target_tons, settings.variety,
                 settings.updated_at),
            )

    # ── Sync conflicts ──────────────────────────────────────────

    def create_conflict(self, conflict: SyncConflict):
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT INTO sync_conflicts "
                "(id, table_name, record_id, local_updated_at, "
                " server_updated_at, local_values, server_values, "
                " resolution, detected_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (conflict.id, conflict.table_name, conflict.record_id,
                 conflict.local_updated_at, conflict.server_updated_at,
                 json.dumps(conflict.local_values, default=str),
                 json.dumps(conflict.server_values, default=str),
                 conflict.resolution, conflict.detected_at),
            )

    def get_conflicts(self, resolution: Optional[str] = None
                      ) -> list[SyncConflict]:
        if resolution:
            rows = self.db.execute(
                "SELECT * FROM sync_conflicts WHERE resolution = ? "
                "ORDER BY detected_at DESC",
                (resolution,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM sync_conflicts ORDER BY detected_at DESC"
            )
        return [_conflict_from_row(r) for r in rows]

    def get_conflict(self, conflict_id: str) -> Optional[SyncConflict]:
        rows = self.db.execute(
            "SELECT * FROM sync_conflicts WHERE id = ?", (conflict_id,)
        )
        return _conflict_from_row(rows[0]) if rows else None

    def update_conflict_resolution(self, conflict_id: str,
                                   resolution: str) -> bool:
        from harvest_pro.utils.constants import CONFLICT_RESOLUTIONS
        if resolution not in CONFLICT_RESOLUTIONS:
            raise ValueError(f"Invalid conflict resolution: {resolution}")
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sync_conflicts SET resolution = ? WHERE id = ?",
                (resolution, conflict_id),
            )
            return cursor.rowcount > 0

    def trim_conflicts(self, max_stored: int) -> int:
        """Delete the oldest resolved conflicts beyond ``max_stored``.

        Pending conflicts are never trimmed.
        """
        with self.db.get_connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) AS cnt FROM sync_conflicts"
            ).fetchone()["cnt"]
            excess = total - max_stored
            if excess <= 0:
                return 0
            cursor = conn.execute(
                "DELETE FROM sync_conflicts WHERE id IN ("
                " SELECT id FROM sync_conflicts"
                " WHERE resolution != 'pending'"
                " ORDER BY detected_at LIMIT ?)",
                (excess,),
            )
            return cursor.rowcount
