"""
SQLite adapter for RecordStore.

Use ":memory:" for tests, a file path for production.

sqlite3 errors never leave this class.  A failed read is a cache miss, a
failed write or delete reports nothing stored or removed, and both are
logged at error level.
"""

import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from newbook_cache.domain.booking import CHECKED_OUT_STATUSES, TERMINAL_STATUSES, BookingRecord
from newbook_cache.domain.codec import PayloadCodec
from newbook_cache.domain.record_store import CacheStatistics, DateSummary, RecordStore, window_bounds

_SCHEMA = """
CREATE TABLE IF NOT EXISTS booking_cache (
    booking_id              INTEGER PRIMARY KEY,
    arrival_date            TEXT NOT NULL,
    departure_date          TEXT NOT NULL,
    booking_placed_date     TEXT,
    booking_cancelled_date  TEXT,
    booking_status          TEXT NOT NULL DEFAULT 'confirmed',
    group_id                TEXT,
    room_name               TEXT NOT NULL DEFAULT '',
    num_guests              INTEGER NOT NULL DEFAULT 0,
    encrypted_data          TEXT NOT NULL,
    last_updated            TEXT NOT NULL,
    cache_type              TEXT NOT NULL DEFAULT 'hot'
);
CREATE INDEX IF NOT EXISTS idx_booking_dates ON booking_cache (arrival_date, departure_date);
CREATE INDEX IF NOT EXISTS idx_booking_status ON booking_cache (booking_status);
CREATE INDEX IF NOT EXISTS idx_booking_placed ON booking_cache (booking_placed_date);
CREATE INDEX IF NOT EXISTS idx_booking_cancelled ON booking_cache (booking_cancelled_date);
CREATE INDEX IF NOT EXISTS idx_booking_cache_type ON booking_cache (cache_type);
"""

_DELETABLE_FIELDS = ("departure_date", "last_updated")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_cutoff(cutoff: date | datetime) -> str:
    if isinstance(cutoff, datetime):
        return cutoff.strftime(TIMESTAMP_FORMAT)
    return cutoff.isoformat()


def _placeholders(values) -> str:
    return ", ".join("?" for _ in values)


class SqliteRecordStore(RecordStore):

    def __init__(
        self,
        codec: PayloadCodec,
        db_path: str = "newbook_cache.db",
        clock: Callable[[], datetime] = _utcnow,
        timeout: float = 5.0,
    ):
        self._codec = codec
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)

    # -- writes --------------------------------------------------------------

    def upsert(self, payload: dict) -> bool:
        now = self._clock()
        try:
            record = BookingRecord.from_payload(payload, now.date())
        except ValueError as exc:
            log.error("Not caching booking: %s", exc)
            return False

        blob = self._codec.encrypt(payload)
        if not blob:
            log.error("Failed to encrypt booking #%d", record.booking_id)
            return False

        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO booking_cache"
                    " (booking_id, arrival_date, departure_date, booking_placed_date,"
                    "  booking_cancelled_date, booking_status, group_id, room_name,"
                    "  num_guests, encrypted_data, last_updated, cache_type)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (record.booking_id, record.arrival_date, record.departure_date,
                     record.booking_placed_date, record.booking_cancelled_date,
                     record.status, record.group_id, record.room_name,
                     record.guest_count, blob, now.strftime(TIMESTAMP_FORMAT),
                     record.cache_tier),
                )
        except sqlite3.Error as exc:
            log.error("Failed to store booking #%d: %s", record.booking_id, exc)
            return False
        return True

    def delete_older_than(
        self,
        statuses: Iterable[str],
        cutoff: date | datetime,
        field: str = "departure_date",
    ) -> int:
        if field not in _DELETABLE_FIELDS:
            raise ValueError(f"cannot delete by {field!r}")
        statuses = sorted(set(statuses))
        if not statuses:
            return 0
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    f"DELETE FROM booking_cache WHERE booking_status IN ({_placeholders(statuses)})"
                    f" AND {field} < ?",
                    (*statuses, _format_cutoff(cutoff)),
                )
        except sqlite3.Error as exc:
            log.error("Failed to delete %s bookings older than %s: %s", "/".join(statuses), cutoff, exc)
            return 0
        return cur.rowcount

    def delete(self, booking_id: int) -> bool:
        try:
            with self._lock, self._conn:
                cur = self._conn.execute("DELETE FROM booking_cache WHERE booking_id = ?", (booking_id,))
        except sqlite3.Error as exc:
            log.error("Failed to delete booking #%d: %s", booking_id, exc)
            return False
        return cur.rowcount > 0

    def clear_all(self) -> int:
        try:
            with self._lock, self._conn:
                cur = self._conn.execute("DELETE FROM booking_cache")
        except sqlite3.Error as exc:
            log.error("Failed to clear booking cache: %s", exc)
            return 0
        return cur.rowcount

    def reencrypt_all(self) -> int:
        try:
            with self._lock:
                rows = self._conn.execute("SELECT booking_id, encrypted_data FROM booking_cache").fetchall()
        except sqlite3.Error as exc:
            log.error("Failed to read bookings for re-encryption: %s", exc)
            return 0
        rewritten = 0
        for row in rows:
            payload = self._codec.decrypt(row["encrypted_data"])
            if payload is None:
                log.error("Booking #%d unreadable, left under its old key", row["booking_id"])
                continue
            blob = self._codec.encrypt(payload)
            if not blob:
                continue
            try:
                with self._lock, self._conn:
                    self._conn.execute(
                        "UPDATE booking_cache SET encrypted_data = ? WHERE booking_id = ?",
                        (blob, row["booking_id"]),
                    )
            except sqlite3.Error as exc:
                log.error("Failed to re-encrypt booking #%d: %s", row["booking_id"], exc)
                continue
            rewritten += 1
        return rewritten

    # -- reads ---------------------------------------------------------------

    def get(self, booking_id: int) -> dict | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT booking_id, encrypted_data FROM booking_cache WHERE booking_id = ?",
                    (booking_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to read booking #%d, treated as absent: %s", booking_id, exc)
            return None
        if not row:
            return None
        return self._decrypt_row(row)

    def contains(self, booking_id: int) -> bool:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT 1 FROM booking_cache WHERE booking_id = ?", (booking_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to look up booking #%d: %s", booking_id, exc)
            return False
        return row is not None

    def range_by_stay(
        self,
        date_from: str,
        date_to: str,
        statuses_excluded: Iterable[str] = (),
        statuses_only: Iterable[str] = (),
    ) -> list[dict]:
        where = "arrival_date <= ? AND departure_date > ?"
        args: list = [date_to[:10], date_from[:10]]
        excluded = sorted(set(statuses_excluded))
        if excluded:
            where += f" AND booking_status NOT IN ({_placeholders(excluded)})"
            args.extend(excluded)
        only = sorted(set(statuses_only))
        if only:
            where += f" AND booking_status IN ({_placeholders(only)})"
            args.extend(only)
        return self._select(where, args)

    def range_by_placed_date(self, date_from: str, date_to: str) -> list[dict]:
        return self._select(
            "booking_placed_date IS NOT NULL AND booking_placed_date BETWEEN ? AND ?",
            list(window_bounds(date_from, date_to)),
        )

    def range_by_cancelled_date(self, date_from: str, date_to: str) -> list[dict]:
        return self._select(
            "booking_cancelled_date IS NOT NULL AND booking_cancelled_date BETWEEN ? AND ?",
            list(window_bounds(date_from, date_to)),
        )

    def statistics(self, today: date) -> CacheStatistics:
        terminal = sorted(TERMINAL_STATUSES)
        checked_out = sorted(CHECKED_OUT_STATUSES)
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT COUNT(*) AS total,"
                    " COALESCE(SUM(departure_date >= ?), 0) AS hot,"
                    f" COALESCE(SUM(booking_status NOT IN ({_placeholders(terminal)})), 0) AS active,"
                    f" COALESCE(SUM(booking_status IN ({_placeholders(checked_out)})), 0) AS checked_out,"
                    " COALESCE(SUM(booking_status = 'cancelled'), 0) AS cancelled"
                    " FROM booking_cache",
                    (today.isoformat(), *terminal, *checked_out),
                ).fetchone()
                statuses = [
                    r[0] for r in self._conn.execute(
                        "SELECT DISTINCT booking_status FROM booking_cache ORDER BY booking_status"
                    ).fetchall()
                ]
                page_count = self._conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = self._conn.execute("PRAGMA page_size").fetchone()[0]
        except sqlite3.Error as exc:
            log.error("Failed to read cache statistics: %s", exc)
            return CacheStatistics()

        return CacheStatistics(
            total=row["total"],
            hot=row["hot"],
            historical=row["total"] - row["hot"],
            active=row["active"],
            checked_out=row["checked_out"],
            cancelled=row["cancelled"],
            db_size_mb=round(page_count * page_size / 1024 / 1024, 2),
            distinct_statuses=statuses,
        )

    def summary_by_date(self, year: int | None = None, month: int | None = None) -> list[DateSummary]:
        terminal = sorted(TERMINAL_STATUSES)
        where, args = "1 = 1", []
        if year is not None:
            where += " AND substr(arrival_date, 1, 4) = ?"
            args.append(f"{year:04d}")
        if month is not None:
            where += " AND substr(arrival_date, 6, 2) = ?"
            args.append(f"{month:02d}")
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT arrival_date, COUNT(*) AS total,"
                    f" SUM(booking_status NOT IN ({_placeholders(terminal)})) AS active,"
                    " SUM(booking_status = 'cancelled') AS cancelled,"
                    " MAX(last_updated) AS last_updated"
                    f" FROM booking_cache WHERE {where}"
                    " GROUP BY arrival_date ORDER BY arrival_date",
                    (*terminal, *args),
                ).fetchall()
        except sqlite3.Error as exc:
            log.error("Failed to read per-date summary: %s", exc)
            return []
        return [
            DateSummary(
                date=r["arrival_date"],
                total=r["total"],
                active=r["active"] or 0,
                cancelled=r["cancelled"] or 0,
                last_updated=(
                    datetime.strptime(r["last_updated"], TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
                    if r["last_updated"] else None
                ),
            )
            for r in rows
        ]

    # -- helpers -------------------------------------------------------------

    def _select(self, where: str, args: list) -> list[dict]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT booking_id, encrypted_data FROM booking_cache WHERE {where}"
                    " ORDER BY arrival_date, booking_id",
                    args,
                ).fetchall()
        except sqlite3.Error as exc:
            log.error("Range read failed, treated as a cache miss: %s", exc)
            return []
        bookings = []
        for row in rows:
            payload = self._decrypt_row(row)
            if payload is not None:
                bookings.append(payload)
        return bookings

    def _decrypt_row(self, row) -> dict | None:
        payload = self._codec.decrypt(row["encrypted_data"])
        if payload is None:
            log.error("Booking #%d could not be decrypted, treated as absent", row["booking_id"])
        return payload
