#!/usr/bin/env python3
"""
Admin CLI: inspect and maintain the NewBook cache.

Usage (from project root):
    python scripts/cache_admin.py stats                  # cache statistics + checkpoints
    python scripts/cache_admin.py summary 2026 11        # per-arrival-date counts
    python scripts/cache_admin.py clear                  # drop every cached booking
    python scripts/cache_admin.py clear-one 500          # drop booking #500
    python scripts/cache_admin.py run full_refresh       # run a sync job now
    python scripts/cache_admin.py uncached 20            # recent uncached/blocked actions
    python scripts/cache_admin.py test                   # test upstream credentials
    python scripts/cache_admin.py reencrypt              # rewrite rows under the current secret
"""

import os
import sys

# Allow running as `python scripts/cache_admin.py` from project root.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from newbook_cache.domain.state import JOB_NAMES
from newbook_cache.factory import Components


def _fmt(when) -> str:
    return when.strftime("%Y-%m-%d %H:%M:%S") if when else "never"


def show_stats(components: Components) -> None:
    gateway = components.gateway()
    stats = gateway.get_statistics()
    checkpoints = gateway.get_checkpoints()
    print(f"\n{'=' * 60}")
    print(f"  Total bookings:   {stats.total}")
    print(f"  Hot / historical: {stats.hot} / {stats.historical}")
    print(f"  Active:           {stats.active}")
    print(f"  Checked out:      {stats.checked_out}")
    print(f"  Cancelled:        {stats.cancelled}")
    print(f"  Database size:    {stats.db_size_mb:.2f} MB")
    print(f"  Statuses seen:    {', '.join(stats.distinct_statuses) or '-'}")
    print(f"{'-' * 60}")
    print(f"  Last full refresh:     {_fmt(checkpoints.last_full_refresh)}")
    print(f"  Last incremental sync: {_fmt(checkpoints.last_incremental_sync)}")
    print(f"  Last cleanup:          {_fmt(checkpoints.last_cleanup)}")
    print(f"{'=' * 60}\n")


def show_summary(components: Components, year: int | None, month: int | None) -> None:
    rows = components.gateway().get_summary_by_date(year=year, month=month)
    if not rows:
        print("No cached bookings.")
        return
    print(f"\n{'Date':<12}  {'Total':>5}  {'Active':>6}  {'Cancel':>6}  Last updated")
    print("-" * 60)
    for r in rows:
        print(f"{r.date:<12}  {r.total:>5}  {r.active:>6}  {r.cancelled:>6}  {_fmt(r.last_updated)}")
    print()


def show_uncached(components: Components, limit: int) -> None:
    entries = components.gateway().get_uncached_requests(limit)
    if not entries:
        print("No uncached requests recorded.")
        return
    for e in entries:
        print(f"{_fmt(e.timestamp)}  {e.action:<24}  {e.caller}  {e.params}")


def run_job(components: Components, job: str) -> None:
    report = components.engine().run(job)
    if report.skipped:
        print(f"{job} is already running.")
        return
    print(
        f"{job}: stored={report.stored} added={report.added} updated={report.updated}"
        f" deleted={report.deleted} failures={report.failures} in {report.elapsed:.2f}s"
    )


def check_connection(components: Components) -> None:
    result = components.gateway().test_connection()
    if not result.success:
        print(f"Connection failed: {result.message}")
        sys.exit(1)
    print(f"Connection OK ({len(result.records)} sites).")


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        return

    components = Components()
    cmd, args = sys.argv[1], sys.argv[2:]

    if cmd == "stats":
        show_stats(components)
    elif cmd == "summary":
        year = int(args[0]) if len(args) >= 1 else None
        month = int(args[1]) if len(args) >= 2 else None
        show_summary(components, year, month)
    elif cmd == "clear":
        print(f"Cleared {components.gateway().clear_all()} cached bookings.")
    elif cmd == "clear-one" and args:
        booking_id = int(args[0])
        found = components.gateway().clear_one(booking_id)
        print(f"Booking #{booking_id} {'removed' if found else 'was not cached'}.")
    elif cmd == "run" and args and args[0] in JOB_NAMES:
        run_job(components, args[0])
    elif cmd == "uncached":
        show_uncached(components, int(args[0]) if args else 50)
    elif cmd == "test":
        check_connection(components)
    elif cmd == "reencrypt":
        print(f"Re-encrypted {components.store.reencrypt_all()} bookings.")
    else:
        print(__doc__)


if __name__ == "__main__":
    main()
