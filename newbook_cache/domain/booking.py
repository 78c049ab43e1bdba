"""
Booking record: the unit of caching.

The upstream payload is the only authoritative copy of a booking.  Every
indexed column is derived from it here, and nowhere else, so the indexed
fields can never drift from what the encrypted payload says.
"""

from dataclasses import dataclass, field
from datetime import date, datetime

# Statuses are upstream-defined and open-ended.  Logic tests membership in
# these sets; there is no list of "valid" statuses.
TERMINAL_STATUSES = frozenset({"cancelled", "departed", "checked_out", "no_show"})
CHECKED_OUT_STATUSES = TERMINAL_STATUSES - {"cancelled"}
NOT_STAYING_STATUSES = frozenset({"cancelled", "no_show"})

DEFAULT_STATUS = "confirmed"


def normalize_status(status) -> str:
    text = str(status or "").strip().lower()
    return text or DEFAULT_STATUS


def is_active(status: str) -> bool:
    """A booking is active unless its status is terminal."""
    return normalize_status(status) not in TERMINAL_STATUSES


def cache_tier_for(departure_date: str, today: date) -> str:
    """'hot' while the guest has not left yet, 'historical' afterwards."""
    return "hot" if departure_date >= today.isoformat() else "historical"


def _date_part(value) -> str:
    return str(value or "")[:10]


def _timestamp(value) -> str | None:
    """Normalize an upstream timestamp to 'YYYY-MM-DD HH:MM:SS', or None."""
    text = str(value or "").strip().replace("T", " ")
    if not text or text.startswith("0000-00-00"):
        return None
    if len(text) == 10:
        text += " 00:00:00"
    return text[:19]


def _int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class BookingRecord:
    booking_id: int
    arrival_date: str            # YYYY-MM-DD
    departure_date: str          # YYYY-MM-DD
    status: str                  # lower case, open-ended
    booking_placed_date: str | None = None     # YYYY-MM-DD HH:MM:SS
    booking_cancelled_date: str | None = None  # YYYY-MM-DD HH:MM:SS
    group_id: str | None = None
    room_name: str = ""
    guest_count: int = 0
    cache_tier: str = "hot"
    payload: dict = field(default_factory=dict)
    last_updated: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict, today: date) -> "BookingRecord":
        """Derive a record from a raw upstream booking dict."""
        booking_id = _int(payload.get("booking_id"))
        if booking_id <= 0:
            raise ValueError("booking payload has no usable booking_id")

        departure = _date_part(payload.get("booking_departure"))
        group_id = payload.get("group_id")
        return cls(
            booking_id=booking_id,
            arrival_date=_date_part(payload.get("booking_arrival")),
            departure_date=departure,
            status=normalize_status(payload.get("booking_status")),
            booking_placed_date=_timestamp(payload.get("booking_placed")),
            booking_cancelled_date=_timestamp(payload.get("booking_cancelled")),
            group_id=str(group_id) if group_id not in (None, "") else None,
            room_name=str(payload.get("site_name") or ""),
            guest_count=_int(payload.get("booking_adults")) + _int(payload.get("booking_children")),
            cache_tier=cache_tier_for(departure, today),
            payload=payload,
        )

    @property
    def is_active(self) -> bool:
        return is_active(self.status)
