"""Application-wide constants."""

# Picker statuses
PICKER_STATUSES = ["active", "inactive", "archived", "break", "issue"]

# Bucket quality grades
QUALITY_GRADES = ["A", "B", "C", "reject"]

# ── Sync queue ──────────────────────────────────────────────────
OPERATION_TYPES = [
    "SCAN",
    "ATTENDANCE",
    "MESSAGE",
    "CONTRACT",
    "TRANSPORT",
    "TIMESHEET",
]

# Severity bands for failed entries (by retry count)
CRITICAL_RETRY_THRESHOLD = 50   # >= is critical, and the dead-letter ceiling
WARNING_RETRY_THRESHOLD = 10    # > is warning, <= is recent

DISCARD_SCOPES = ["critical", "all"]

# Categories that will never succeed on retry
PERMANENT_ERROR_CATEGORIES = {"validation"}

# Conflicts kept in the local store before old resolved ones are trimmed
MAX_STORED_CONFLICTS = 50

CONFLICT_RESOLUTIONS = ["pending", "keep_local", "keep_server", "merged"]

# ── Remote error codes ──────────────────────────────────────────
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_UNIQUE_VIOLATION = "23505"
PGRST_NO_ROWS = "PGRST116"

ERROR_EXPLANATIONS = {
    PG_FOREIGN_KEY_VIOLATION:
        "Foreign key violation: the picker or orchard no longer exists",
    PG_UNIQUE_VIOLATION:
        "Duplicate: this record already exists on the server",
    PGRST_NO_ROWS:
        "Row-level security rejection: the action was blocked by server "
        "security rules (e.g. archived picker)",
}

# ── Anti-fraud ──────────────────────────────────────────────────
MAX_CLOCK_SKEW_SECONDS = 300

# ── Pay (NZ defaults) ───────────────────────────────────────────
MINIMUM_WAGE = 23.50
PIECE_RATE = 6.50
CURRENCY = "NZD"

# ── Break policy (NZ Employment Relations Act) ──────────────────
BREAK_REQUIREMENTS = {
    "rest_interval_minutes": 120,
    "rest_duration_minutes": 10,
    "meal_interval_minutes": 240,
    "meal_duration_minutes": 30,
    "hydration_interval_minutes": 45,
    "hydration_duration_minutes": 5,
    "max_consecutive_work_hours": 10,
    "recommended_max_daily_hours": 12,
}

BREAK_TYPES = ["rest", "meal", "hydration"]

# Warn this many minutes before the rest-break mark
NEEDS_BREAK_AT_MINUTES = 110

# Hydration reminders only fire once this overdue
HYDRATION_GRACE_MINUTES = 15

# Rest breaks overdue by more than this escalate to high severity
REST_BREAK_ESCALATION_MINUTES = 30
