"""
Freshness oracle: may an empty cache result be reported as "no bookings"?

Pure functions over (window, checkpoints, retention, now).  No I/O.

Only stay windows and cancellation windows are ever backfilled, so only
those can be trusted when empty.

Every uncertain case answers False.
"""

from dataclasses import replace
from datetime import date, datetime, timedelta

from newbook_cache.domain.settings import RetentionPolicy
from newbook_cache.domain.state import SyncCheckpoints

INCREMENTAL_TRUST_WINDOW = timedelta(hours=1)


def _parse_date(value: str) -> date | None:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def within_retention(date_from: date, date_to: date, retention: RetentionPolicy, today: date) -> bool:
    """True if [date_from, date_to] touches the window we keep backfilled."""
    earliest = today - timedelta(days=retention.past_days)
    latest = today + timedelta(days=retention.future_days)
    return date_from <= latest and date_to >= earliest


def recently_synced(checkpoints: SyncCheckpoints, now: datetime) -> bool:
    """A full refresh ever, or an incremental sync within the last hour."""
    if checkpoints.last_full_refresh is not None:
        return True
    last = checkpoints.last_incremental_sync
    if last is None:
        return False
    age = now - last
    # A checkpoint ahead of `now` is never trusted.
    return timedelta(0) <= age <= INCREMENTAL_TRUST_WINDOW


def is_window_trustworthy(
    date_from: str,
    date_to: str,
    checkpoints: SyncCheckpoints,
    retention: RetentionPolicy,
    now: datetime,
) -> bool:
    start = _parse_date(date_from)
    end = _parse_date(date_to)
    if start is None or end is None or start > end:
        return False
    if not within_retention(start, end, retention, now.date()):
        return False
    return recently_synced(checkpoints, now)


def is_cancelled_window_trustworthy(
    date_from: str,
    date_to: str,
    checkpoints: SyncCheckpoints,
    retention: RetentionPolicy,
    now: datetime,
) -> bool:
    """Same test for a cancellation-date window, backfilled over [today - cancelled_days, today + future_days]."""
    cancelled = replace(retention, past_days=retention.cancelled_days)
    return is_window_trustworthy(date_from, date_to, checkpoints, cancelled, now)
