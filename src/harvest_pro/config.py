"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
import uuid
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "harvest_pro.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )

    # Remote data service (settings.json overrides .env)
    REMOTE_BASE_URL: str = _runtime.get(
        "remote_base_url",
        os.getenv("REMOTE_BASE_URL", "http://localhost:54321/rest/v1"),
    )
    REMOTE_API_KEY: str = _runtime.get(
        "remote_api_key",
        os.getenv("REMOTE_API_KEY", ""),
    )
    REMOTE_TIMEOUT: int = int(_runtime.get(
        "remote_timeout",
        os.getenv("REMOTE_TIMEOUT", "15"),
    ))

    # Sync
    SYNC_INTERVAL_SECONDS: int = int(_runtime.get(
        "sync_interval_seconds",
        os.getenv("SYNC_INTERVAL_SECONDS", "300"),
    ))
    RETRY_CEILING: int = int(_runtime.get(
        "retry_ceiling",
        os.getenv("RETRY_CEILING", "50"),
    ))
    FAST_FAIL_PERMANENT_ERRORS: bool = _runtime.get(
        "fast_fail_permanent_errors",
        _env_bool("FAST_FAIL_PERMANENT_ERRORS", "false"),
    )
    SYNCED_RETENTION_DAYS: int = int(_runtime.get(
        "synced_retention_days",
        os.getenv("SYNCED_RETENTION_DAYS", "7"),
    ))
    DEVICE_ID: str = _runtime.get("device_id", os.getenv("DEVICE_ID", ""))
    LAST_SYNC_TIMESTAMP: str = _runtime.get("last_sync_timestamp", "")

    # Scanning (anti-fraud)
    MAX_CLOCK_SKEW_SECONDS: int = int(_runtime.get(
        "max_clock_skew_seconds",
        os.getenv("MAX_CLOCK_SKEW_SECONDS", "300"),
    ))

    # Pay rates used when an orchard has no settings row yet
    DEFAULT_PIECE_RATE: float = float(_runtime.get(
        "default_piece_rate",
        os.getenv("DEFAULT_PIECE_RATE", "6.50"),
    ))
    DEFAULT_MIN_WAGE_RATE: float = float(_runtime.get(
        "default_min_wage_rate",
        os.getenv("DEFAULT_MIN_WAGE_RATE", "23.50"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def get_device_id(cls) -> str:
        """Return this device's sync id, generating and persisting it once."""
        if not cls.DEVICE_ID:
            cls.DEVICE_ID = uuid.uuid4().hex[:12]
            settings = _load_settings()
            settings["device_id"] = cls.DEVICE_ID
            _save_settings(settings)
        return cls.DEVICE_ID

    @classmethod
    def update_last_sync(cls, timestamp: str):
        """Record the time of the last successful sync pass."""
        cls.LAST_SYNC_TIMESTAMP = timestamp
        settings = _load_settings()
        settings["last_sync_timestamp"] = timestamp
        _save_settings(settings)

    @classmethod
    def update_remote_settings(cls, base_url: str, api_key: str,
                               timeout: int):
        """Update the remote service connection and persist to disk."""
        cls.REMOTE_BASE_URL = base_url
        cls.REMOTE_API_KEY = api_key
        cls.REMOTE_TIMEOUT = timeout

        settings = _load_settings()
        settings["remote_base_url"] = base_url
        settings["remote_api_key"] = api_key
        settings["remote_timeout"] = timeout
        _save_settings(settings)

    @classmethod
    def update_sync_settings(cls, interval_seconds: int, retry_ceiling: int,
                             fast_fail: bool = False):
        """Update sync cadence and dead-letter threshold, then persist."""
        if retry_ceiling < 1:
            raise ValueError("Retry ceiling must be at least 1")
        cls.SYNC_INTERVAL_SECONDS = interval_seconds
        cls.RETRY_CEILING = retry_ceiling
        cls.FAST_FAIL_PERMANENT_ERRORS = fast_fail

        settings = _load_settings()
        settings["sync_interval_seconds"] = interval_seconds
        settings["retry_ceiling"] = retry_ceiling
        settings["fast_fail_permanent_errors"] = fast_fail
        _save_settings(settings)

    @classmethod
    def update_pay_rates(cls, piece_rate: float, min_wage_rate: float):
        """Update fallback pay rates and persist."""
        cls.DEFAULT_PIECE_RATE = piece_rate
        cls.DEFAULT_MIN_WAGE_RATE = min_wage_rate

        settings = _load_settings()
        settings["default_piece_rate"] = piece_rate
        settings["default_min_wage_rate"] = min_wage_rate
        _save_settings(settings)
