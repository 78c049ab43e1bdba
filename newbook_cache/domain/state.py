"""
Process-wide persisted state: sync checkpoints, the sites list cache and the
audit trail of requests the gateway does not cache, and the per-job leases
that keep sync runs from overlapping.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

FULL_REFRESH = "full_refresh"
INCREMENTAL_SYNC = "incremental_sync"
CLEANUP = "cleanup"

JOB_NAMES = (FULL_REFRESH, INCREMENTAL_SYNC, CLEANUP)


@dataclass
class SyncCheckpoints:
    last_full_refresh: datetime | None = None
    last_incremental_sync: datetime | None = None
    last_cleanup: datetime | None = None


@dataclass
class UncachedRequest:
    action: str
    params: dict
    caller: str
    timestamp: datetime


class CheckpointStore(ABC):
    """
    Port: last successful completion time per sync job.

    Each checkpoint has exactly one writer (its job).
    """

    @abstractmethod
    def get(self, name: str) -> datetime | None:
        ...

    @abstractmethod
    def set(self, name: str, when: datetime) -> None:
        ...

    def load(self) -> SyncCheckpoints:
        return SyncCheckpoints(
            last_full_refresh=self.get(FULL_REFRESH),
            last_incremental_sync=self.get(INCREMENTAL_SYNC),
            last_cleanup=self.get(CLEANUP),
        )


class SitesCache(ABC):
    """Port: the inventory (sites) list, cached as a whole with a timestamp."""

    @abstractmethod
    def get(self) -> tuple[list[dict], datetime] | None:
        """Return (sites, cached_at), or None if nothing is cached."""
        ...

    @abstractmethod
    def store(self, sites: list[dict], cached_at: datetime) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class UncachedRequestLog(ABC):
    """Port: audit trail for actions outside the cached whitelist."""

    @abstractmethod
    def record(self, action: str, params: dict, caller: str, when: datetime) -> None:
        ...

    @abstractmethod
    def recent(self, limit: int = 50) -> list[UncachedRequest]:
        """Most recent entries first."""
        ...


class JobLease(ABC):
    """
    Port: one running instance per sync job across every process sharing
    the state store.

    A lease belongs to one holder until it is released or expires.  An
    expired lease is taken over by the next acquirer.
    """

    @abstractmethod
    def acquire(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        """Take the lease unless another holder owns an unexpired one."""
        ...

    @abstractmethod
    def release(self, name: str, holder: str) -> None:
        """Drop the lease if holder still owns it."""
        ...
