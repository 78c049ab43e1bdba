"""
RecordStore port: encrypted booking rows indexed by date and status.

The store accepts raw upstream payloads, derives the indexed columns via
BookingRecord.from_payload(), and hands decrypted payloads back.  Callers
never see blobs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable


@dataclass
class CacheStatistics:
    total: int = 0
    hot: int = 0
    historical: int = 0
    active: int = 0
    checked_out: int = 0
    cancelled: int = 0
    db_size_mb: float = 0.0
    distinct_statuses: list[str] = field(default_factory=list)


@dataclass
class DateSummary:
    """Per-arrival-date counts for the admin calendar view."""

    date: str
    total: int
    active: int
    cancelled: int
    last_updated: datetime | None


class RecordStore(ABC):
    """
    Port: one encrypted row per booking_id, last write wins.

    A row that fails to decrypt is logged and skipped; it never fails a
    whole read.
    """

    @abstractmethod
    def upsert(self, payload: dict) -> bool:
        """Insert or replace the booking. False if it could not be stored."""
        ...

    @abstractmethod
    def get(self, booking_id: int) -> dict | None:
        """Return the decrypted payload, or None if absent or unreadable."""
        ...

    @abstractmethod
    def contains(self, booking_id: int) -> bool:
        """True if a row exists for booking_id (no decryption)."""
        ...

    @abstractmethod
    def range_by_stay(
        self,
        date_from: str,
        date_to: str,
        statuses_excluded: Iterable[str] = (),
        statuses_only: Iterable[str] = (),
    ) -> list[dict]:
        """Bookings with arrival <= date_to AND departure > date_from."""
        ...

    @abstractmethod
    def range_by_placed_date(self, date_from: str, date_to: str) -> list[dict]:
        """Bookings placed between date_from 00:00:00 and date_to 23:59:59."""
        ...

    @abstractmethod
    def range_by_cancelled_date(self, date_from: str, date_to: str) -> list[dict]:
        """Bookings cancelled between date_from 00:00:00 and date_to 23:59:59."""
        ...

    @abstractmethod
    def delete_older_than(
        self,
        statuses: Iterable[str],
        cutoff: date | datetime,
        field: str = "departure_date",
    ) -> int:
        """
        Delete rows whose status is in `statuses` and whose `field` is
        strictly before `cutoff`.  field is "departure_date" or
        "last_updated".  Returns the number of rows removed.
        """
        ...

    @abstractmethod
    def delete(self, booking_id: int) -> bool:
        """Remove one booking. True if a row was removed."""
        ...

    @abstractmethod
    def clear_all(self) -> int:
        """Remove every booking. Returns the number of rows removed."""
        ...

    @abstractmethod
    def statistics(self, today: date) -> CacheStatistics:
        ...

    @abstractmethod
    def summary_by_date(self, year: int | None = None, month: int | None = None) -> list[DateSummary]:
        """Counts grouped by arrival date, oldest first."""
        ...

    @abstractmethod
    def reencrypt_all(self) -> int:
        """Rewrite every readable row under the codec's current key."""
        ...


def window_bounds(date_from: str, date_to: str) -> tuple[str, str]:
    """Timestamp bounds covering whole days from date_from to date_to."""
    return f"{date_from[:10]} 00:00:00", f"{date_to[:10]} 23:59:59"
