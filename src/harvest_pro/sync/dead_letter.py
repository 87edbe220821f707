"""Dead-letter store and the operator actions on failed sync entries."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from harvest_pro.database.models import (
    DeadLetterEntry,
    QueueEntry,
    classify_severity,
)
from harvest_pro.database.repository import Repository
from harvest_pro.utils.constants import (
    CRITICAL_RETRY_THRESHOLD,
    DISCARD_SCOPES,
    ERROR_EXPLANATIONS,
)

logger = logging.getLogger(__name__)

FailedEntry = Union[QueueEntry, DeadLetterEntry]

DISCARD_MESSAGES = {
    "all": "This will permanently delete ALL failed sync items. Are you sure?",
    "critical": (
        f"This will delete all critical errors ({CRITICAL_RETRY_THRESHOLD}+ "
        "retries). Are you sure?"
    ),
}


def describe_error(error_code: str = "", message: str = "") -> str:
    """Translate a backend error into an operator-readable explanation."""
    if error_code in ERROR_EXPLANATIONS:
        return ERROR_EXPLANATIONS[error_code]
    lowered = (message or "").lower()
    if "archived" in lowered:
        return ("Picker archived: cannot sync buckets for removed or "
                "suspended workers")
    if "network" in lowered:
        return "Network error: connection lost during sync"
    return message or "Unknown error"


@dataclass
class CategorizedFailures:
    critical: list = field(default_factory=list)
    warning: list = field(default_factory=list)
    recent: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.critical) + len(self.warning) + len(self.recent)

    def all(self) -> list:
        return self.critical + self.warning + self.recent


class DeadLetterQueue:
    """Moves exhausted entries aside and serves the operator triage view."""

    def __init__(self, repo: Repository,
                 on_retry: Optional[Callable[[], object]] = None):
        self.repo = repo
        self._on_retry = on_retry

    def move(self, entry_id: str, error_code: str,
             failure_reason: str) -> DeadLetterEntry:
        """Relocate a live entry into the dead-letter store."""
        moved = self.repo.move_to_dead_letter(
            entry_id, error_code, failure_reason,
            datetime.now(timezone.utc).isoformat(),
        )
        logger.error(
            f"Dead-lettered {moved.type} {moved.id} after "
            f"{moved.retry_count} retries ({error_code}): {failure_reason}"
        )
        return moved

    def list_failures(self) -> CategorizedFailures:
        """Dead letters plus live entries that have failed, by severity."""
        failures = CategorizedFailures()
        items: list[FailedEntry] = list(self.repo.get_dead_letters())
        items.extend(self.repo.get_failed_queue_entries())
        for item in items:
            getattr(failures, classify_severity(item.retry_count)).append(item)
        return failures

    def retry(self, entry_id: str) -> QueueEntry:
        """Put a failed entry back into rotation with a fresh retry count.

        Dead letters are moved back into the live queue; entries still in
        the live queue are reset in place. Either way a sync pass is
        triggered immediately.
        """
        if self.repo.get_dead_letter(entry_id) is not None:
            entry = self.repo.requeue_dead_letter(entry_id)
            logger.info(f"Requeued dead letter {entry.type} {entry.id}")
        elif self.repo.reset_queue_retry(entry_id):
            entry = self.repo.get_queue_entry(entry_id)
            logger.info(f"Reset retry count for {entry.type} {entry.id}")
        else:
            raise ValueError(f"No failed entry {entry_id} to retry")

        if self._on_retry is not None:
            self._on_retry()
        return entry

    def discard(self, entry_id: str) -> bool:
        """Delete an entry from both stores. The data is gone for good."""
        removed_dlq = self.repo.delete_dead_letter(entry_id)
        removed_live = self.repo.delete_queue_entry(entry_id)
        if removed_dlq or removed_live:
            logger.warning(f"Discarded failed sync entry {entry_id}")
        return removed_dlq or removed_live

    def discard_all(self, scope: str,
                    confirm: Callable[[str], bool]) -> int:
        """Bulk-delete failed entries after operator confirmation.

        ``critical`` removes entries at or above the critical threshold from
        both stores; ``all`` empties the dead-letter store and drops every
        live entry that has failed. Returns the number of entries removed,
        0 when the operator declines.
        """
        if scope not in DISCARD_SCOPES:
            raise ValueError(f"Invalid discard scope: {scope}")
        if not confirm(DISCARD_MESSAGES[scope]):
            return 0

        if scope == "critical":
            removed = (
                self.repo.delete_dead_letters_from_retry(
                    CRITICAL_RETRY_THRESHOLD)
                + self.repo.delete_queue_entries_from_retry(
                    CRITICAL_RETRY_THRESHOLD)
            )
        else:
            removed = (self.repo.clear_dead_letters()
                       + self.repo.clear_failed_queue_entries())
        logger.warning(f"Discarded {removed} failed sync entries ({scope})")
        return removed
