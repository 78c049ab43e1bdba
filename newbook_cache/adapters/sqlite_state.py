"""
SQLite adapters for the small state tables: sync checkpoints, the cached
sites list, the uncached-request audit trail and the per-job leases.

Use ":memory:" for tests, a file path for production.  All four may share
the database file used by SqliteRecordStore; the leases only coordinate
processes that do.

sqlite3 errors are logged and read as "nothing stored".
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone

from newbook_cache.domain.state import (
    CheckpointStore,
    JobLease,
    SitesCache,
    UncachedRequest,
    UncachedRequestLog,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_checkpoints (
    name        TEXT PRIMARY KEY,
    value       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_leases (
    name        TEXT PRIMARY KEY,
    holder      TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sites_cache (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    sites       TEXT NOT NULL,
    cached_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS uncached_requests (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    action      TEXT NOT NULL,
    params      TEXT NOT NULL,
    timestamp   TEXT NOT NULL,
    caller      TEXT NOT NULL DEFAULT 'unknown'
);
CREATE INDEX IF NOT EXISTS idx_uncached_action ON uncached_requests (action);
CREATE INDEX IF NOT EXISTS idx_uncached_timestamp ON uncached_requests (timestamp);
"""

# Fixed width and UTC, so lease expiries compare as strings.
LEASE_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

log = logging.getLogger(__name__)


def _parse_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


def _lease_stamp(when: datetime) -> str:
    return when.astimezone(timezone.utc).strftime(LEASE_FORMAT)


class _SqliteTable:

    def __init__(self, db_path: str, timeout: float = 5.0):
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)


class SqliteCheckpointStore(_SqliteTable, CheckpointStore):

    def __init__(self, db_path: str = "newbook_cache.db", timeout: float = 5.0):
        super().__init__(db_path, timeout)

    def get(self, name: str) -> datetime | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value FROM sync_checkpoints WHERE name = ?", (name,)
                ).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to read checkpoint %s: %s", name, exc)
            return None
        return _parse_dt(row["value"]) if row else None

    def set(self, name: str, when: datetime) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO sync_checkpoints (name, value) VALUES (?, ?)",
                    (name, when.isoformat()),
                )
        except sqlite3.Error as exc:
            log.error("Failed to save checkpoint %s: %s", name, exc)


class SqliteJobLease(_SqliteTable, JobLease):
    """
    One row per running job.  Taking the lease is a single upsert that only
    overwrites an expired row, followed by a read of the owner, both inside
    one write transaction.
    """

    def __init__(self, db_path: str = "newbook_cache.db", timeout: float = 5.0):
        super().__init__(db_path, timeout)

    def acquire(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO sync_leases (name, holder, expires_at) VALUES (?, ?, ?)"
                    " ON CONFLICT (name) DO UPDATE"
                    " SET holder = excluded.holder, expires_at = excluded.expires_at"
                    " WHERE sync_leases.holder = excluded.holder OR sync_leases.expires_at <= ?",
                    (name, holder, _lease_stamp(now + ttl), _lease_stamp(now)),
                )
                row = self._conn.execute(
                    "SELECT holder FROM sync_leases WHERE name = ?", (name,)
                ).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to take lease for %s: %s", name, exc)
            return False
        return row is not None and row["holder"] == holder

    def release(self, name: str, holder: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM sync_leases WHERE name = ? AND holder = ?", (name, holder)
                )
        except sqlite3.Error as exc:
            log.error("Failed to release lease for %s, it will expire: %s", name, exc)


class SqliteSitesCache(_SqliteTable, SitesCache):

    def __init__(self, db_path: str = "newbook_cache.db", timeout: float = 5.0):
        super().__init__(db_path, timeout)

    def get(self) -> tuple[list[dict], datetime] | None:
        try:
            with self._lock:
                row = self._conn.execute("SELECT sites, cached_at FROM sites_cache WHERE id = 1").fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to read cached sites: %s", exc)
            return None
        if not row:
            return None
        return json.loads(row["sites"]), _parse_dt(row["cached_at"])

    def store(self, sites: list[dict], cached_at: datetime) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO sites_cache (id, sites, cached_at) VALUES (1, ?, ?)",
                    (json.dumps(sites), cached_at.isoformat()),
                )
        except sqlite3.Error as exc:
            log.error("Failed to cache sites: %s", exc)

    def clear(self) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM sites_cache")
        except sqlite3.Error as exc:
            log.error("Failed to clear cached sites: %s", exc)


class SqliteUncachedRequestLog(_SqliteTable, UncachedRequestLog):

    def __init__(self, db_path: str = "newbook_cache.db", timeout: float = 5.0):
        super().__init__(db_path, timeout)

    def record(self, action: str, params: dict, caller: str, when: datetime) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO uncached_requests (action, params, timestamp, caller) VALUES (?, ?, ?, ?)",
                    (action, json.dumps(params, sort_keys=True), when.isoformat(), caller),
                )
        except sqlite3.Error as exc:
            log.error("Failed to record uncached request %s: %s", action, exc)

    def recent(self, limit: int = 50) -> list[UncachedRequest]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT * FROM uncached_requests ORDER BY id DESC LIMIT ?", (limit,)
                ).fetchall()
        except sqlite3.Error as exc:
            log.error("Failed to read uncached requests: %s", exc)
            return []
        return [
            UncachedRequest(
                action=r["action"],
                params=json.loads(r["params"]),
                caller=r["caller"],
                timestamp=_parse_dt(r["timestamp"]),
            )
            for r in rows
        ]
