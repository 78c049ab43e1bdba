"""
In-memory RecordStore for testing, no database required.

Rows are still encrypted through the codec so decryption failures behave
exactly as they do with SQLite.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from newbook_cache.domain.booking import CHECKED_OUT_STATUSES, BookingRecord
from newbook_cache.domain.codec import PayloadCodec
from newbook_cache.domain.record_store import CacheStatistics, DateSummary, RecordStore, window_bounds

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore(RecordStore):

    def __init__(self, codec: PayloadCodec, clock: Callable[[], datetime] = _utcnow):
        self._codec = codec
        self._clock = clock
        self._rows: dict[int, tuple[BookingRecord, str]] = {}

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
        self._rows[record.booking_id] = (replace(record, payload={}, last_updated=now), blob)
        return True

    def get(self, booking_id: int) -> dict | None:
        row = self._rows.get(booking_id)
        return self._decrypt(row) if row else None

    def contains(self, booking_id: int) -> bool:
        return booking_id in self._rows

    def range_by_stay(
        self,
        date_from: str,
        date_to: str,
        statuses_excluded: Iterable[str] = (),
        statuses_only: Iterable[str] = (),
    ) -> list[dict]:
        excluded, only = set(statuses_excluded), set(statuses_only)
        return self._select(
            lambda r: r.arrival_date <= date_to[:10]
            and r.departure_date > date_from[:10]
            and r.status not in excluded
            and (not only or r.status in only)
        )

    def range_by_placed_date(self, date_from: str, date_to: str) -> list[dict]:
        low, high = window_bounds(date_from, date_to)
        return self._select(lambda r: r.booking_placed_date is not None and low <= r.booking_placed_date <= high)

    def range_by_cancelled_date(self, date_from: str, date_to: str) -> list[dict]:
        low, high = window_bounds(date_from, date_to)
        return self._select(
            lambda r: r.booking_cancelled_date is not None and low <= r.booking_cancelled_date <= high
        )

    def delete_older_than(
        self,
        statuses: Iterable[str],
        cutoff: date | datetime,
        field: str = "departure_date",
    ) -> int:
        statuses = set(statuses)
        if field == "departure_date":
            limit = cutoff.date() if isinstance(cutoff, datetime) else cutoff

            def expired(r: BookingRecord) -> bool:
                return r.departure_date < limit.isoformat()
        elif field == "last_updated":
            limit = cutoff if isinstance(cutoff, datetime) else datetime.combine(cutoff, datetime.min.time(), timezone.utc)

            def expired(r: BookingRecord) -> bool:
                return r.last_updated is not None and r.last_updated < limit
        else:
            raise ValueError(f"cannot delete by {field!r}")

        doomed = [bid for bid, (r, _) in self._rows.items() if r.status in statuses and expired(r)]
        for bid in doomed:
            del self._rows[bid]
        return len(doomed)

    def delete(self, booking_id: int) -> bool:
        return self._rows.pop(booking_id, None) is not None

    def clear_all(self) -> int:
        count = len(self._rows)
        self._rows.clear()
        return count

    def statistics(self, today: date) -> CacheStatistics:
        records = [r for r, _ in self._rows.values()]
        hot = sum(1 for r in records if r.departure_date >= today.isoformat())
        return CacheStatistics(
            total=len(records),
            hot=hot,
            historical=len(records) - hot,
            active=sum(1 for r in records if r.is_active),
            checked_out=sum(1 for r in records if r.status in CHECKED_OUT_STATUSES),
            cancelled=sum(1 for r in records if r.status == "cancelled"),
            db_size_mb=0.0,
            distinct_statuses=sorted({r.status for r in records}),
        )

    def summary_by_date(self, year: int | None = None, month: int | None = None) -> list[DateSummary]:
        groups: dict[str, list[BookingRecord]] = {}
        for r, _ in self._rows.values():
            if year is not None and r.arrival_date[:4] != f"{year:04d}":
                continue
            if month is not None and r.arrival_date[5:7] != f"{month:02d}":
                continue
            groups.setdefault(r.arrival_date, []).append(r)
        return [
            DateSummary(
                date=day,
                total=len(rows),
                active=sum(1 for r in rows if r.is_active),
                cancelled=sum(1 for r in rows if r.status == "cancelled"),
                last_updated=max((r.last_updated for r in rows if r.last_updated), default=None),
            )
            for day, rows in sorted(groups.items())
        ]

    def reencrypt_all(self) -> int:
        rewritten = 0
        for bid, (record, blob) in list(self._rows.items()):
            payload = self._codec.decrypt(blob)
            new_blob = self._codec.encrypt(payload) if payload is not None else None
            if new_blob:
                self._rows[bid] = (record, new_blob)
                rewritten += 1
        return rewritten

    def corrupt(self, booking_id: int, blob: str = "not-a-valid-blob") -> None:
        """Test helper: overwrite the stored blob for a booking."""
        record, _ = self._rows[booking_id]
        self._rows[booking_id] = (record, blob)

    def _select(self, predicate) -> list[dict]:
        matches = sorted(
            (row for row in self._rows.values() if predicate(row[0])),
            key=lambda row: (row[0].arrival_date, row[0].booking_id),
        )
        return [p for p in (self._decrypt(row) for row in matches) if p is not None]

    def _decrypt(self, row: tuple[BookingRecord, str]) -> dict | None:
        record, blob = row
        payload = self._codec.decrypt(blob)
        if payload is None:
            log.error("Booking #%d could not be decrypted, treated as absent", record.booking_id)
        return payload
