"""
Synchronization jobs that keep the record store consistent with upstream.

  full_refresh      backfill the whole retention window in 30-day chunks
  incremental_sync  pull everything that changed since the last checkpoint
  cleanup           evict rows past their status-specific retention

Each job runs under a lease keyed by its name, so an invocation while the
same job is running (in this process or another one sharing the state
store) is a logged no-op.  Different jobs may overlap; they write disjoint
checkpoints.  The scheduler and manual admin triggers both go through
SyncEngine.run(), so there is one code path per job.

No job retries.  A failed unit of work (a chunk, a record, a delete) is
logged and the job moves on; the next scheduled run fills the gap.  Every
job sets its checkpoint when it finishes.
"""

import logging
import math
import os
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable

from newbook_cache.adapters.memory_simulator import InMemoryJobLease
from newbook_cache.adapters.ports import BookingApi, UpstreamResult
from newbook_cache.domain.booking import CHECKED_OUT_STATUSES
from newbook_cache.domain.record_store import RecordStore
from newbook_cache.domain.settings import Settings
from newbook_cache.domain.state import CLEANUP, FULL_REFRESH, INCREMENTAL_SYNC, CheckpointStore, JobLease

CHUNK_DAYS = 30
CHUNK_PAUSE_SECONDS = 0.1
FIRST_SYNC_LOOKBACK = timedelta(minutes=1)
# A lease older than this belongs to a run that died without releasing it.
LEASE_TTL = timedelta(hours=2)

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _period(day_from: date, day_to: date) -> dict:
    return {
        "period_from": f"{day_from.isoformat()} 00:00:00",
        "period_to": f"{day_to.isoformat()} 23:59:59",
    }


def _stamp(when: datetime) -> str:
    return when.strftime("%Y-%m-%d %H:%M:%S")


def _holder() -> str:
    return f"{os.getpid()}-{uuid.uuid4().hex[:8]}"


@dataclass
class SyncReport:
    job: str
    skipped: bool = False
    stored: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    failures: int = 0
    elapsed: float = 0.0


class SyncEngine:

    def __init__(
        self,
        api: BookingApi,
        store: RecordStore,
        checkpoints: CheckpointStore,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        leases: JobLease | None = None,
        lease_ttl: timedelta = LEASE_TTL,
    ):
        self._api = api
        self._store = store
        self._checkpoints = checkpoints
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self._leases = leases or InMemoryJobLease()
        self._lease_ttl = lease_ttl
        self._jobs = {
            FULL_REFRESH: self._full_refresh,
            INCREMENTAL_SYNC: self._incremental_sync,
            CLEANUP: self._cleanup,
        }

    def run(self, job: str) -> SyncReport:
        """Run one job by name unless an instance of it is already running."""
        if job not in self._jobs:
            raise ValueError(f"Unknown sync job: {job!r}")

        holder = _holder()
        if not self._leases.acquire(job, holder, self._clock(), self._lease_ttl):
            log.info("%s already running - skipped", job)
            return SyncReport(job=job, skipped=True)

        started = time.monotonic()
        try:
            report = self._jobs[job]()
        except Exception:
            log.exception("%s aborted", job)
            report = SyncReport(job=job, failures=1)
        finally:
            self._leases.release(job, holder)
        report.elapsed = round(time.monotonic() - started, 2)
        return report

    def full_refresh(self) -> SyncReport:
        return self.run(FULL_REFRESH)

    def incremental_sync(self) -> SyncReport:
        return self.run(INCREMENTAL_SYNC)

    def cleanup(self) -> SyncReport:
        return self.run(CLEANUP)

    # -- jobs ------------------------------------------------------------------

    def _full_refresh(self) -> SyncReport:
        log.info("=== Full Refresh Started ===")
        report = SyncReport(job=FULL_REFRESH)
        retention = self._settings.retention()
        today = self._clock().date()

        # Step 1: future staying bookings, near future first
        chunks = math.ceil(retention.future_days / CHUNK_DAYS)
        horizon = today + timedelta(days=retention.future_days)
        log.info("Fetching future bookings (next %d days, %d chunks)", retention.future_days, chunks)
        for chunk in range(chunks):
            if chunk:
                self._sleep(CHUNK_PAUSE_SECONDS)
            chunk_from = today + timedelta(days=chunk * CHUNK_DAYS)
            chunk_to = min(chunk_from + timedelta(days=CHUNK_DAYS), horizon)
            log.debug("Requesting chunk %d: %s to %s", chunk, chunk_from, chunk_to)
            self._fetch_into(report, f"chunk {chunk}", {**_period(chunk_from, chunk_to), "list_type": "staying"})

        # Step 2: cancellations across the cancelled-retention and future windows
        log.info("Fetching cancelled bookings (last %d days)", retention.cancelled_days)
        self._fetch_into(report, "cancelled", {
            **_period(today - timedelta(days=retention.cancelled_days), horizon),
            "list_type": "cancelled",
        })

        # Step 3: recent past stays
        log.info("Fetching past bookings (last %d days)", retention.past_days)
        self._fetch_into(report, "past", {
            **_period(today - timedelta(days=retention.past_days), today),
            "list_type": "staying",
        })

        self._checkpoints.set(FULL_REFRESH, self._clock())
        log.info("=== Full Refresh Complete: %d bookings, %d failures ===", report.stored, report.failures)
        return report

    def _incremental_sync(self) -> SyncReport:
        report = SyncReport(job=INCREMENTAL_SYNC)
        now = self._clock()
        since = self._checkpoints.get(INCREMENTAL_SYNC) or now - FIRST_SYNC_LOOKBACK

        log.debug("Incremental sync check (since %s)", _stamp(since))
        try:
            result = self._api.call("bookings_list", {
                "period_from": _stamp(since),
                "period_to": _stamp(now),
                "list_type": "all",
            })
        except Exception:
            log.exception("Incremental sync: request failed")
            result = UpstreamResult.failure("transport_error", "request raised")

        if not result.success:
            # The checkpoint advances even when upstream did not answer.
            log.debug("Incremental sync: no response from API (%s)", result.message)
            report.failures = 1
            self._checkpoints.set(INCREMENTAL_SYNC, now)
            return report

        if not result.records:
            self._checkpoints.set(INCREMENTAL_SYNC, now)
            return report

        log.info("Incremental sync: %d changes detected", len(result.records))
        for booking in result.records:
            try:
                if not isinstance(booking, dict):
                    raise TypeError(f"expected a booking object, got {type(booking).__name__}")
                existed = self._store.contains(_booking_id(booking))
                stored = self._store.upsert(booking)
            except Exception:
                report.failures += 1
                log.exception("Incremental sync: failed to store a changed booking")
                continue
            if stored:
                report.stored += 1
                if existed:
                    report.updated += 1
                else:
                    report.added += 1
        log.info("Incremental sync complete: %d updated, %d added", report.updated, report.added)

        self._checkpoints.set(INCREMENTAL_SYNC, now)
        return report

    def _cleanup(self) -> SyncReport:
        log.info("=== Cleanup Started ===")
        report = SyncReport(job=CLEANUP)
        retention = self._settings.retention()
        now = self._clock()

        departed = self._evict(
            report, "departed", CHECKED_OUT_STATUSES,
            now.date() - timedelta(days=retention.past_days), "departure_date",
        )
        cancelled = self._evict(
            report, "cancelled", {"cancelled"},
            now - timedelta(days=retention.cancelled_days), "last_updated",
        )
        report.deleted = departed + cancelled
        log.info("Cleanup complete: %d old bookings, %d old cancellations removed", departed, cancelled)

        self._checkpoints.set(CLEANUP, self._clock())
        return report

    # -- helpers ---------------------------------------------------------------

    def _fetch_into(self, report: SyncReport, label: str, params: dict) -> None:
        try:
            result = self._api.call("bookings_list", params)
        except Exception:
            report.failures += 1
            log.exception("Full refresh %s failed", label)
            return
        if not result.success:
            report.failures += 1
            log.error("Full refresh %s failed: %s", label, result.message)
            return
        log.info("Received %d bookings for %s", len(result.records), label)
        for booking in result.records:
            try:
                if not isinstance(booking, dict):
                    raise TypeError(f"expected a booking object, got {type(booking).__name__}")
                if self._store.upsert(booking):
                    report.stored += 1
            except Exception:
                report.failures += 1
                log.exception("Full refresh %s: failed to store a booking", label)

    def _evict(
        self,
        report: SyncReport,
        label: str,
        statuses: Iterable[str],
        cutoff: date | datetime,
        field: str,
    ) -> int:
        try:
            return self._store.delete_older_than(statuses, cutoff, field=field)
        except Exception:
            report.failures += 1
            log.exception("Cleanup of %s bookings failed", label)
            return 0


def _booking_id(booking: dict) -> int:
    try:
        return int(booking.get("booking_id") or 0)
    except (TypeError, ValueError):
        return 0
