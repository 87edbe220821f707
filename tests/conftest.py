"""Shared test fixtures."""

import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from harvest_pro.config import Config
from harvest_pro.database.connection import DatabaseConnection
from harvest_pro.database.models import Picker
from harvest_pro.database.repository import Repository
from harvest_pro.database.schema import initialize_database
from harvest_pro.errors import RemoteError, RemoteNetworkError
from harvest_pro.sync.sync_queue import SyncQueue

_MUTABLE_CONFIG = [
    "REMOTE_BASE_URL", "REMOTE_API_KEY", "REMOTE_TIMEOUT",
    "SYNC_INTERVAL_SECONDS", "RETRY_CEILING", "FAST_FAIL_PERMANENT_ERRORS",
    "SYNCED_RETENTION_DAYS", "DEVICE_ID", "LAST_SYNC_TIMESTAMP",
    "MAX_CLOCK_SKEW_SECONDS", "DEFAULT_PIECE_RATE", "DEFAULT_MIN_WAGE_RATE",
]


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Redirect settings I/O to a temp file and restore Config afterwards."""
    import harvest_pro.config as config_mod
    monkeypatch.setattr(config_mod, "_SETTINGS_FILE",
                        tmp_path / "settings.json")
    saved = {attr: getattr(Config, attr) for attr in _MUTABLE_CONFIG}
    Config.RETRY_CEILING = 50
    Config.FAST_FAIL_PERMANENT_ERRORS = False
    Config.MAX_CLOCK_SKEW_SECONDS = 300
    Config.SYNCED_RETENTION_DAYS = 7
    yield
    for attr, val in saved.items():
        setattr(Config, attr, val)


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def queue(repo):
    return SyncQueue(repo)


def scan_payload(picker_id="p-1", orchard_id="orch-1", grade="A"):
    return {
        "picker_id": picker_id,
        "orchard_id": orchard_id,
        "quality_grade": grade,
        "timestamp": "2026-03-02T09:00:00+00:00",
    }


@pytest.fixture
def make_scan():
    """Factory for valid SCAN payload dicts."""
    return scan_payload


@pytest.fixture
def crew():
    """Three pickers: two working, one archived."""
    return [
        Picker(id="p-1", picker_id="E001", name="Aroha", hours=8.0,
               total_buckets_today=5, orchard_id="orch-1",
               checked_in_today=1),
        Picker(id="p-2", picker_id="E002", name="Ben", hours=8.0,
               total_buckets_today=30, orchard_id="orch-1",
               checked_in_today=1),
        Picker(id="p-3", picker_id="E003", name="Cleo", hours=4.0,
               total_buckets_today=10, status="archived",
               orchard_id="orch-1", checked_in_today=1),
    ]


class FakeRemote:
    """In-memory stand-in for RemoteClient keyed like the real tables.

    ``fail_with`` maps an entry id to the exception its write raises;
    ``online`` drives ``is_reachable``. Ids in ``ack_lost`` have their
    write applied once and then fail as if the response never arrived.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self.fail_with: dict[str, Exception] = {}
        self.online = True
        self.ack_lost: set[str] = set()

    def _check(self, key):
        if key in self.fail_with:
            raise self.fail_with[key]

    def upsert(self, table, row, on_conflict="id"):
        self.calls.append(("upsert", table, row[on_conflict]))
        self._check(row[on_conflict])
        rows = self.tables.setdefault(table, {})
        rows[row[on_conflict]] = {**rows.get(row[on_conflict], {}), **row}
        if row[on_conflict] in self.ack_lost:
            self.ack_lost.discard(row[on_conflict])
            raise RemoteNetworkError("connection reset before response")
        return [rows[row[on_conflict]]]

    def insert(self, table, row):
        return self.upsert(table, row)

    def update(self, table, values, filters):
        self.calls.append(("update", table, dict(filters)))
        for value in filters.values():
            self._check(value)
        matched = []
        for row in self.tables.get(table, {}).values():
            if all(str(row.get(k)) == str(v) for k, v in filters.items()):
                row.update(values)
                matched.append(dict(row))
        return matched

    def select(self, table, filters=None):
        return [
            dict(row) for row in self.tables.get(table, {}).values()
            if all(str(row.get(k)) == str(v)
                   for k, v in (filters or {}).items())
        ]

    def is_reachable(self):
        return self.online


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def remote_error():
    """Factory for RemoteError instances."""
    def _make(code="", status=400, message="rejected"):
        return RemoteError(message, code=code, status=status)
    return _make
