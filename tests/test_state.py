"""
Tests for the small state adapters: checkpoints, the sites cache, the
uncached-request audit trail and the job leases.  Each runs against SQLite
and in-memory.
"""

from datetime import datetime, timedelta, timezone

import pytest

from newbook_cache.adapters.memory_simulator import (
    InMemoryCheckpointStore,
    InMemoryJobLease,
    InMemorySitesCache,
    InMemoryUncachedRequestLog,
)
from newbook_cache.adapters.sqlite_state import (
    SqliteCheckpointStore,
    SqliteJobLease,
    SqliteSitesCache,
    SqliteUncachedRequestLog,
)
from newbook_cache.domain.state import CLEANUP, FULL_REFRESH, INCREMENTAL_SYNC, SyncCheckpoints

from tests.contracts.record_store_contract import exclusive_lock

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(hours=2)


@pytest.fixture(params=["sqlite", "memory"])
def checkpoints(request):
    return SqliteCheckpointStore(":memory:") if request.param == "sqlite" else InMemoryCheckpointStore()


@pytest.fixture(params=["sqlite", "memory"])
def sites(request):
    return SqliteSitesCache(":memory:") if request.param == "sqlite" else InMemorySitesCache()


@pytest.fixture(params=["sqlite", "memory"])
def audit(request):
    return SqliteUncachedRequestLog(":memory:") if request.param == "sqlite" else InMemoryUncachedRequestLog()


@pytest.fixture(params=["sqlite", "memory"])
def leases(request):
    return SqliteJobLease(":memory:") if request.param == "sqlite" else InMemoryJobLease()


def test_checkpoints_start_empty(checkpoints):
    assert checkpoints.load() == SyncCheckpoints()


def test_checkpoints_round_trip_timezone(checkpoints):
    checkpoints.set(FULL_REFRESH, NOW)
    checkpoints.set(INCREMENTAL_SYNC, NOW + timedelta(seconds=20))

    loaded = checkpoints.load()
    assert loaded.last_full_refresh == NOW
    assert loaded.last_incremental_sync == NOW + timedelta(seconds=20)
    assert loaded.last_cleanup is None


def test_checkpoint_overwrite(checkpoints):
    checkpoints.set(CLEANUP, NOW)
    checkpoints.set(CLEANUP, NOW + timedelta(days=1))
    assert checkpoints.get(CLEANUP) == NOW + timedelta(days=1)


def test_sites_store_get_clear(sites):
    assert sites.get() is None
    sites.store([{"site_id": 1, "site_name": "Cabin 1"}], NOW)

    cached, cached_at = sites.get()
    assert cached == [{"site_id": 1, "site_name": "Cabin 1"}]
    assert cached_at == NOW

    sites.clear()
    assert sites.get() is None


def test_sites_store_replaces_previous(sites):
    sites.store([{"site_id": 1}], NOW)
    sites.store([{"site_id": 2}], NOW + timedelta(hours=1))
    assert sites.get() == ([{"site_id": 2}], NOW + timedelta(hours=1))


def test_audit_most_recent_first(audit):
    audit.record("guests_list", {"period_from": "2026-06-01"}, "cron", NOW)
    audit.record("invoices_list", {}, "api_key -> /proxy", NOW + timedelta(minutes=1))

    entries = audit.recent()
    assert [e.action for e in entries] == ["invoices_list", "guests_list"]
    assert entries[1].params == {"period_from": "2026-06-01"}
    assert entries[0].caller == "api_key -> /proxy"
    assert entries[0].timestamp == NOW + timedelta(minutes=1)


def test_audit_limit(audit):
    for i in range(5):
        audit.record(f"action_{i}", {}, "cron", NOW + timedelta(seconds=i))
    assert [e.action for e in audit.recent(limit=2)] == ["action_4", "action_3"]


def test_sqlite_state_tables_share_one_file(tmp_path):
    path = str(tmp_path / "state.db")
    SqliteCheckpointStore(path).set(FULL_REFRESH, NOW)
    SqliteSitesCache(path).store([{"site_id": 1}], NOW)

    assert SqliteCheckpointStore(path).get(FULL_REFRESH) == NOW
    assert SqliteSitesCache(path).get() == ([{"site_id": 1}], NOW)


def test_lease_blocks_other_holder_until_released(leases):
    assert leases.acquire(FULL_REFRESH, "a", NOW, TTL) is True
    assert leases.acquire(FULL_REFRESH, "b", NOW + timedelta(minutes=5), TTL) is False

    leases.release(FULL_REFRESH, "a")
    assert leases.acquire(FULL_REFRESH, "b", NOW + timedelta(minutes=5), TTL) is True


def test_lease_is_per_job(leases):
    assert leases.acquire(FULL_REFRESH, "a", NOW, TTL) is True
    assert leases.acquire(CLEANUP, "b", NOW, TTL) is True


def test_lease_release_by_other_holder_is_ignored(leases):
    leases.acquire(CLEANUP, "a", NOW, TTL)
    leases.release(CLEANUP, "b")
    assert leases.acquire(CLEANUP, "b", NOW, TTL) is False


def test_expired_lease_is_taken_over(leases):
    leases.acquire(CLEANUP, "a", NOW, TTL)
    assert leases.acquire(CLEANUP, "b", NOW + TTL, TTL) is True
    assert leases.acquire(CLEANUP, "a", NOW + TTL, TTL) is False
    # The old holder finishing late must not free the new holder's lease.
    leases.release(CLEANUP, "a")
    assert leases.acquire(CLEANUP, "c", NOW + TTL, TTL) is False


def test_sqlite_leases_shared_through_one_file(tmp_path):
    path = str(tmp_path / "state.db")
    assert SqliteJobLease(path).acquire(INCREMENTAL_SYNC, "process-1", NOW, TTL) is True
    assert SqliteJobLease(path).acquire(INCREMENTAL_SYNC, "process-2", NOW, TTL) is False


def test_sqlite_state_on_locked_file_reads_as_empty(tmp_path):
    path = str(tmp_path / "state.db")
    checkpoints = SqliteCheckpointStore(path, timeout=0.05)
    sites = SqliteSitesCache(path, timeout=0.05)
    audit = SqliteUncachedRequestLog(path, timeout=0.05)
    leases = SqliteJobLease(path, timeout=0.05)

    with exclusive_lock(path):
        checkpoints.set(CLEANUP, NOW)
        sites.store([{"site_id": 1}], NOW)
        audit.record("guests_list", {}, "cron", NOW)
        assert checkpoints.get(CLEANUP) is None
        assert sites.get() is None
        assert audit.recent() == []
        assert leases.acquire(CLEANUP, "a", NOW, TTL) is False

    assert checkpoints.get(CLEANUP) is None
    assert leases.acquire(CLEANUP, "a", NOW, TTL) is True
