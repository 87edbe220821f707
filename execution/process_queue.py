"""Run one sync pass from the command line.

Usage: python process_queue.py [--status]
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from harvest_pro.config import Config
from harvest_pro.database.connection import DatabaseConnection
from harvest_pro.database.repository import Repository
from harvest_pro.database.schema import initialize_database
from harvest_pro.sync.remote_client import RemoteClient
from harvest_pro.sync.sync_manager import SyncManager
from harvest_pro.utils.formatters import format_retry_count
from harvest_pro.utils.log import configure_logging

logger = logging.getLogger("process_queue")


def print_status(manager: SyncManager):
    status = manager.get_sync_status()
    print(f"Device:        {status['device_id']}")
    print(f"Online:        {status['online']}")
    print(f"Pending:       {status['pending']}")
    for op_type, count in sorted(status["pending_by_type"].items()):
        print(f"  {op_type:<12} {count}")
    print(f"Max retries:   "
          f"{format_retry_count(status['max_retry'], status['retry_ceiling'])}")
    print(f"Dead letters:  {status['dead_letters']}")
    print(f"Last sync:     {status['last_sync'] or 'never'}")


def main():
    configure_logging()
    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    with RemoteClient() as remote:
        manager = SyncManager(repo, remote)
        if "--status" in sys.argv[1:]:
            print_status(manager)
            return

        result = manager.process_queue()
        if result.skipped:
            print(f"Sync skipped: {result.skipped_reason} "
                  f"({result.remaining} pending)")
            sys.exit(2)
        print(f"Synced {result.synced}, failed {result.failed}, "
              f"dead-lettered {result.dead_lettered}, "
              f"{result.remaining} remaining")
        manager.queue.cleanup_synced()


if __name__ == "__main__":
    main()
