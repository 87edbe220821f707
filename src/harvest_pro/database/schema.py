"""Database schema definition and initialization."""

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Live sync queue. seq preserves insertion (FIFO) order; id is the
    # client-generated uuid that doubles as the remote primary key.
    """CREATE TABLE IF NOT EXISTS sync_queue (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        type TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        timestamp TEXT NOT NULL,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
        last_error_code TEXT NOT NULL DEFAULT '',
        last_error_message TEXT NOT NULL DEFAULT ''
    )""",

    # Permanently failed entries awaiting operator triage
    """CREATE TABLE IF NOT EXISTS dead_letter_queue (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        timestamp TEXT NOT NULL,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
        failure_reason TEXT NOT NULL DEFAULT '',
        error_code TEXT NOT NULL DEFAULT '',
        moved_at TEXT NOT NULL
    )""",

    # Cached crew roster for the current orchard
    """CREATE TABLE IF NOT EXISTS pickers (
        id TEXT PRIMARY KEY,
        picker_id TEXT NOT NULL,
        name TEXT NOT NULL,
        current_row INTEGER NOT NULL DEFAULT 0,
        total_buckets_today INTEGER NOT NULL DEFAULT 0
            CHECK (total_buckets_today >= 0),
        hours REAL NOT NULL DEFAULT 0 CHECK (hours >= 0),
        status TEXT NOT NULL DEFAULT 'active'
            CHECK (status IN ('active', 'inactive', 'archived', 'break', 'issue')),
        safety_verified INTEGER NOT NULL DEFAULT 0,
        orchard_id TEXT NOT NULL,
        team_leader_id TEXT,
        checked_in_today INTEGER NOT NULL DEFAULT 0,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Local bucket ledger (what this device has scanned)
    """CREATE TABLE IF NOT EXISTS scanned_buckets (
        id TEXT PRIMARY KEY,
        picker_id TEXT NOT NULL,
        quality_grade TEXT NOT NULL
            CHECK (quality_grade IN ('A', 'B', 'C', 'reject')),
        timestamp TEXT NOT NULL,
        orchard_id TEXT NOT NULL,
        synced INTEGER NOT NULL DEFAULT 0,
        scanned_by TEXT NOT NULL DEFAULT '',
        row_number INTEGER
    )""",

    # Cached per-orchard harvest settings
    """CREATE TABLE IF NOT EXISTS harvest_settings (
        orchard_id TEXT PRIMARY KEY,
        piece_rate REAL NOT NULL DEFAULT 6.50 CHECK (piece_rate >= 0),
        min_wage_rate REAL NOT NULL DEFAULT 23.50 CHECK (min_wage_rate >= 0),
        min_buckets_per_hour REAL NOT NULL DEFAULT 3.6,
        target_tons REAL NOT NULL DEFAULT 100,
        variety TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )""",

    # Conflicts detected by optimistic-lock updates
    """CREATE TABLE IF NOT EXISTS sync_conflicts (
        id TEXT PRIMARY KEY,
        table_name TEXT NOT NULL,
        record_id TEXT NOT NULL,
        local_updated_at TEXT NOT NULL DEFAULT '',
        server_updated_at TEXT NOT NULL DEFAULT '',
        local_values TEXT NOT NULL DEFAULT '{}',
        server_values TEXT NOT NULL DEFAULT '{}',
        resolution TEXT NOT NULL DEFAULT 'pending'
            CHECK (resolution IN ('pending', 'keep_local', 'keep_server', 'merged')),
        detected_at TEXT NOT NULL
    )""",

    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_queue_retry ON sync_queue(retry_count)",
    "CREATE INDEX IF NOT EXISTS idx_dlq_retry ON dead_letter_queue(retry_count)",
    "CREATE INDEX IF NOT EXISTS idx_buckets_picker "
    "ON scanned_buckets(picker_id, synced)",
    "CREATE INDEX IF NOT EXISTS idx_buckets_timestamp "
    "ON scanned_buckets(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_pickers_orchard ON pickers(orchard_id)",
    "CREATE INDEX IF NOT EXISTS idx_conflicts_detected "
    "ON sync_conflicts(detected_at)",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except Exception:
        return 0


def initialize_database(db_connection):
    """Create all tables and indexes on a fresh database.

    A database already at the current version is left untouched.
    """
    with db_connection.get_connection() as conn:
        if _get_schema_version(conn) >= SCHEMA_VERSION:
            return
        for stmt in _SCHEMA_STATEMENTS:
            conn.execute(stmt)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
