"""SyncQueue: durable on-device queue of pending remote writes.

An operation is written to the ``sync_queue`` table before any network I/O
happens, so a reload or a dropped connection never loses it.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from harvest_pro.config import Config
from harvest_pro.database.models import QueueEntry, ScannedBucket
from harvest_pro.database.repository import Repository

from .operations import parse_payload, payload_to_dict

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncQueue:
    """Enqueue, acknowledge and retry-count pending operations."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def _build_entry(self, op_type: str, payload,
                     entry_id: str = "") -> QueueEntry:
        if isinstance(payload, dict):
            payload = parse_payload(op_type, payload)
        else:
            payload.validate()
        return QueueEntry(
            id=entry_id or str(uuid.uuid4()),
            type=op_type,
            payload=payload_to_dict(payload),
            timestamp=_now_iso(),
            retry_count=0,
        )

    def enqueue(self, op_type: str, payload, entry_id: str = "") -> QueueEntry:
        """Validate and persist an operation.

        ``payload`` may be a typed payload or a plain dict. Raises
        ValueError / UnknownOperationError for a bad payload and
        StorageFullError when the device is out of space.
        """
        entry = self._build_entry(op_type, payload, entry_id)
        entry.seq = self.repo.insert_queue_entry(entry)
        logger.debug(f"Queued {op_type} {entry.id}")
        return entry

    def enqueue_scan(self, payload, bucket: ScannedBucket) -> QueueEntry:
        """Queue a SCAN keyed by the bucket id and store the bucket locally.

        Both writes share one transaction, so a StorageFullError leaves
        neither the queue entry nor the bucket behind.
        """
        entry = self._build_entry("SCAN", payload, bucket.id)
        entry.seq = self.repo.record_scan(entry, bucket)
        logger.debug(f"Queued SCAN {entry.id} with local bucket")
        return entry

    def dequeue(self, entry_id: str) -> bool:
        """Remove an entry after the remote write was confirmed."""
        return self.repo.delete_queue_entry(entry_id)

    def mark_synced(self, entry_id: str) -> bool:
        """Acknowledge a synced entry and flag its local bucket record."""
        removed = self.dequeue(entry_id)
        self.repo.mark_bucket_synced(entry_id)
        return removed

    def increment_retry(self, entry_id: str, error_code: str = "",
                        error_message: str = "") -> int:
        return self.repo.increment_queue_retry(
            entry_id, error_code, error_message
        )

    def reset_retry(self, entry_id: str) -> bool:
        return self.repo.reset_queue_retry(entry_id)

    def get(self, entry_id: str):
        return self.repo.get_queue_entry(entry_id)

    def pending(self) -> list[QueueEntry]:
        """Entries waiting to sync, oldest first."""
        return self.repo.get_queue_entries()

    def pending_count(self) -> int:
        return self.repo.get_queue_count()

    def max_retry_count(self) -> int:
        return self.repo.get_queue_summary()["max_retry"]

    def summary(self) -> dict:
        """Per-type breakdown with retry stats, for status badges."""
        summary = self.repo.get_queue_summary()
        summary["last_sync"] = Config.LAST_SYNC_TIMESTAMP or None
        return summary

    def cleanup_synced(self, days: int | None = None) -> int:
        """Delete synced local bucket records older than the retention window."""
        days = Config.SYNCED_RETENTION_DAYS if days is None else days
        threshold = (datetime.now(timezone.utc) - timedelta(days=days))
        deleted = self.repo.delete_synced_buckets_before(threshold.isoformat())
        if deleted:
            logger.info(f"Cleaned up {deleted} synced bucket record(s)")
        return deleted
