"""Compare-and-swap updates guarded by the server's ``updated_at`` column.

The update carries ``updated_at = <value the client last read>`` as part of
its filter, so the server applies it only if nobody else wrote first. A
losing writer sees zero rows come back, fetches the winner's row, and
records a conflict instead of overwriting it.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from harvest_pro.database.models import SyncConflict
from harvest_pro.database.repository import Repository
from harvest_pro.utils.constants import MAX_STORED_CONFLICTS

logger = logging.getLogger(__name__)


@dataclass
class LockResult:
    success: bool
    data: Optional[dict] = None
    conflict: Optional[SyncConflict] = None


def record_conflict(repo: Repository, table: str, record_id: str,
                    local_updated_at: str, server_updated_at: str,
                    local_values: dict, server_values: dict) -> SyncConflict:
    """Store a detected conflict and trim old resolved ones."""
    conflict = SyncConflict(
        id=str(uuid.uuid4()),
        table_name=table,
        record_id=record_id,
        local_updated_at=local_updated_at,
        server_updated_at=server_updated_at,
        local_values=dict(local_values),
        server_values=dict(server_values),
        resolution="pending",
        detected_at=datetime.now(timezone.utc).isoformat(),
    )
    repo.create_conflict(conflict)
    repo.trim_conflicts(MAX_STORED_CONFLICTS)
    logger.warning(
        f"Conflict on {table}/{record_id}: local={local_updated_at}, "
        f"server={server_updated_at}"
    )
    return conflict


def resolve_conflict(repo: Repository, conflict_id: str,
                     resolution: str) -> Optional[SyncConflict]:
    """Mark a stored conflict resolved. Returns None if it is unknown."""
    if not repo.update_conflict_resolution(conflict_id, resolution):
        logger.warning(f"Conflict {conflict_id} not found")
        return None
    logger.info(f"Conflict {conflict_id} resolved: {resolution}")
    return repo.get_conflict(conflict_id)


def with_optimistic_lock(remote, repo: Repository, table: str,
                         record_id: str, expected_updated_at: str,
                         updates: dict, key: str = "id") -> LockResult:
    """Apply ``updates`` only if the row still has ``expected_updated_at``.

    Returns ``LockResult(success=True, data=row)`` when the write won and
    ``LockResult(success=False, conflict=...)`` on a version mismatch.
    Network, permission and constraint errors propagate.
    """
    rows = remote.update(
        table, updates,
        {key: record_id, "updated_at": expected_updated_at},
    )
    if rows:
        logger.info(f"Locked update on {table}/{record_id} succeeded")
        return LockResult(success=True, data=rows[0])

    server_rows = remote.select(table, {key: record_id})
    if not server_rows:
        logger.error(f"Record {table}/{record_id} not found, may be deleted")
        conflict = record_conflict(
            repo, table, record_id, expected_updated_at, "DELETED",
            updates, {},
        )
        return LockResult(success=False, conflict=conflict)

    server_row = server_rows[0]
    conflict = record_conflict(
        repo, table, record_id, expected_updated_at,
        str(server_row.get("updated_at") or "unknown"),
        updates, server_row,
    )
    return LockResult(success=False, data=server_row, conflict=conflict)


def update_without_lock(remote, table: str, record_id: str,
                        updates: dict, key: str = "id") -> LockResult:
    """Plain update for callers that never read an ``updated_at``."""
    rows = remote.update(table, updates, {key: record_id})
    return LockResult(success=bool(rows), data=rows[0] if rows else None)
