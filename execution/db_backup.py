"""Database backup script: snapshots the local queue database."""

import sqlite3
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from harvest_pro.config import Config

KEEP_BACKUPS = 10


def backup_database(db_path: Path | None = None,
                    backup_dir: Path | None = None) -> Path | None:
    """Write a timestamped copy of the database using SQLite's backup API.

    The online backup is consistent even while a sync pass is writing.
    Returns the backup path, or None when there is no database yet.
    """
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        return None

    backup_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_file = backup_dir / f"harvest_pro_{stamp}.db"

    src = sqlite3.connect(str(db_path))
    dst = sqlite3.connect(str(backup_file))
    try:
        src.backup(dst)
    finally:
        dst.close()
        src.close()
    print(f"Backup created: {backup_file}")

    backups = sorted(backup_dir.glob("harvest_pro_*.db"), reverse=True)
    for old in backups[KEEP_BACKUPS:]:
        old.unlink()
        print(f"Removed old backup: {old.name}")
    return backup_file


if __name__ == "__main__":
    backup_database()
