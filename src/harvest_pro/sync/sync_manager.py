"""SyncManager: drains the local queue into the remote data service.

Each device keeps pending writes in its own SQLite queue. A sync pass:
1. Skips entirely when offline or when a pass is already running
2. Walks the queue oldest-first, one entry at a time
3. Dequeues entries whose remote write succeeded
4. Bumps the retry counter of entries that failed
5. Moves entries that reached the retry ceiling to the dead-letter store

Remote writes are keyed on the entry id, so an entry that landed
server-side but whose acknowledgement was lost can be retried safely.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from harvest_pro.config import Config
from harvest_pro.database.repository import Repository
from harvest_pro.errors import RemoteError, SyncError, UnknownOperationError
from harvest_pro.utils.constants import PERMANENT_ERROR_CATEGORIES

from .dead_letter import DeadLetterQueue
from .processors import dispatch
from .sync_queue import SyncQueue

logger = logging.getLogger(__name__)

_NETWORK_HINTS = ("fetch", "network", "timeout", "timed out", "aborted",
                  "connection")
_SERVER_HINTS = ("500", "502", "503", "504", "429")
_VALIDATION_HINTS = ("constraint", "violat", "unique", "foreign key",
                     "invalid", "required")


def categorize_error(error: Exception) -> str:
    """Classify a failure as network, server, validation or unknown."""
    code = getattr(error, "code", "") or ""
    status = getattr(error, "status", 0) or 0

    if code == "NETWORK":
        return "network"
    if code.startswith("23") or code.startswith("22"):
        return "validation"
    if status == 429 or status >= 500 or code.startswith("PGRST0"):
        return "server"
    if isinstance(error, (UnknownOperationError, ValueError)):
        return "validation"

    msg = str(error).lower()
    if any(hint in msg for hint in _NETWORK_HINTS):
        return "network"
    if any(hint in msg for hint in _SERVER_HINTS):
        return "server"
    if any(hint in msg for hint in _VALIDATION_HINTS):
        return "validation"
    return "unknown"


@dataclass
class SyncResult:
    """Counts from one pass over the queue."""

    synced: int = 0
    failed: int = 0
    dead_lettered: int = 0
    remaining: int = 0
    skipped_reason: str = ""

    @property
    def skipped(self) -> bool:
        return bool(self.skipped_reason)

    def to_dict(self) -> dict:
        return asdict(self)


class SyncManager:
    """Serial, FIFO drain of the sync queue."""

    def __init__(self, repo: Repository, remote,
                 queue: Optional[SyncQueue] = None,
                 is_online: Optional[Callable[[], bool]] = None):
        self.repo = repo
        self.remote = remote
        self.queue = queue or SyncQueue(repo)
        self._is_online = is_online or remote.is_reachable
        self._draining = False
        self.dead_letters = DeadLetterQueue(repo, on_retry=self.process_queue)

    @property
    def retry_ceiling(self) -> int:
        return Config.RETRY_CEILING

    @property
    def is_draining(self) -> bool:
        return self._draining

    def is_online(self) -> bool:
        return bool(self._is_online())

    def process_queue(self) -> SyncResult:
        """Run one pass over the queue. Never runs two passes at once."""
        if self._draining:
            return SyncResult(skipped_reason="busy")
        if not self.is_online():
            return SyncResult(
                remaining=self.queue.pending_count(),
                skipped_reason="offline",
            )

        self._draining = True
        result = SyncResult()
        try:
            for entry in self.queue.pending():
                if entry.retry_count >= self.retry_ceiling:
                    self._dead_letter(
                        entry.id,
                        entry.last_error_code or "MAX_RETRIES",
                        entry.last_error_message or "max_retries_exceeded",
                    )
                    result.dead_lettered += 1
                    continue

                outcome = self._sync_entry(entry)
                if outcome == "synced":
                    result.synced += 1
                elif outcome == "dead_lettered":
                    result.dead_lettered += 1
                else:
                    result.failed += 1
                    if outcome == "offline":
                        # Connection dropped mid-pass; keep the rest in order
                        logger.info("Connection lost, stopping sync pass")
                        break
        finally:
            self._draining = False

        if result.synced:
            Config.update_last_sync(datetime.now(timezone.utc).isoformat())
        result.remaining = self.queue.pending_count()
        logger.info(
            f"Sync pass: {result.synced} synced, {result.failed} failed, "
            f"{result.dead_lettered} dead-lettered, "
            f"{result.remaining} remaining"
        )
        return result

    def _sync_entry(self, entry) -> str:
        try:
            dispatch(self.remote, entry)
        except (RemoteError, UnknownOperationError, ValueError) as e:
            return self._record_failure(entry, e)

        self.queue.mark_synced(entry.id)
        logger.debug(f"Synced {entry.type} {entry.id}")
        return "synced"

    def _record_failure(self, entry, error: Exception) -> str:
        category = categorize_error(error)
        error_code = getattr(error, "code", "") or category.upper()
        message = str(error)
        count = self.queue.increment_retry(entry.id, error_code, message)
        logger.warning(
            f"Failed to sync {entry.type} {entry.id} ({category}), "
            f"retry {count}: {message}"
        )

        fast_fail = (Config.FAST_FAIL_PERMANENT_ERRORS
                     and category in PERMANENT_ERROR_CATEGORIES)
        if count >= self.retry_ceiling or fast_fail:
            self._dead_letter(entry.id, error_code, message)
            return "dead_lettered"
        if category == "network":
            return "offline"
        return "failed"

    def _dead_letter(self, entry_id: str, error_code: str, reason: str):
        try:
            self.dead_letters.move(entry_id, error_code, reason)
        except ValueError as e:
            raise SyncError(f"Could not dead-letter {entry_id}: {e}") from e

    def get_sync_status(self) -> dict:
        """Current queue and dead-letter status information."""
        summary = self.queue.summary()
        return {
            "online": self.is_online(),
            "draining": self._draining,
            "device_id": Config.get_device_id(),
            "pending": summary["total"],
            "pending_by_type": summary["by_type"],
            "max_retry": summary["max_retry"],
            "oldest_timestamp": summary["oldest_timestamp"],
            "dead_letters": self.repo.get_dead_letter_count(),
            "last_sync": summary["last_sync"],
            "retry_ceiling": self.retry_ceiling,
        }
