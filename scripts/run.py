"""
Local process runner for the NewBook API cache.

Starts the sync scheduler (full refresh daily 03:00, cleanup daily 04:00,
incremental sync every NEWBOOK_CACHE_SYNC_INTERVAL_SECONDS) and keeps the
process alive.  The gateway itself is exposed by whatever transport layer
imports Components().gateway().

Usage:
    source .env && python scripts/run.py
    source .env && python scripts/run.py --refresh-first   # backfill before scheduling

Environment variables (all required unless noted):
    NEWBOOK_CACHE_SECRET        - encryption secret for cached rows
    NEWBOOK_CACHE_USERNAME      - NewBook API username
    NEWBOOK_CACHE_PASSWORD      - NewBook API password
    NEWBOOK_CACHE_API_KEY       - NewBook API key
    NEWBOOK_CACHE_REGION        - NewBook region (default: au)
    NEWBOOK_CACHE_DB_PATH       - SQLite database path (default: data/newbook_cache.db)
    NEWBOOK_CACHE_SYNC_INTERVAL_SECONDS - incremental sync interval, 10-300 (default: 20)
    NEWBOOK_CACHE_LOG_LEVEL     - off, error, info or debug (default: info)
"""

import logging
import os
import sys
import time

# Make sure project root is on sys.path when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from newbook_cache.domain.settings import ConfigError
from newbook_cache.domain.state import FULL_REFRESH
from newbook_cache.factory import Components, configure_logging
from newbook_cache.scheduler import SyncScheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

SETTINGS_POLL_SECONDS = 30


def main() -> None:
    try:
        components = Components()
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(components.settings)
    scheduler = SyncScheduler(components.engine(), components.settings)

    if "--refresh-first" in sys.argv[1:]:
        report = scheduler.run_now(FULL_REFRESH)
        log.info("Initial full refresh: %d bookings stored in %.2fs", report.stored, report.elapsed)

    scheduler.start()
    try:
        while True:
            time.sleep(SETTINGS_POLL_SECONDS)
            configure_logging(components.settings)
            scheduler.reschedule_incremental()
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        log.info("Scheduler stopped.")
