"""In-memory adapters for settings and sync state, for tests and local development."""

import threading
from datetime import datetime, timedelta

from newbook_cache.domain.settings import Settings
from newbook_cache.domain.state import (
    CheckpointStore,
    JobLease,
    SitesCache,
    UncachedRequest,
    UncachedRequestLog,
)


class InMemorySettings(Settings):

    def __init__(self, **values):
        self._values: dict[str, str] = {k: str(v) for k, v in values.items()}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value) -> None:
        self._values[name] = str(value)


class InMemoryCheckpointStore(CheckpointStore):

    def __init__(self):
        self._values: dict[str, datetime] = {}

    def get(self, name: str) -> datetime | None:
        return self._values.get(name)

    def set(self, name: str, when: datetime) -> None:
        self._values[name] = when


class InMemorySitesCache(SitesCache):

    def __init__(self):
        self._entry: tuple[list[dict], datetime] | None = None

    def get(self) -> tuple[list[dict], datetime] | None:
        return self._entry

    def store(self, sites: list[dict], cached_at: datetime) -> None:
        self._entry = (list(sites), cached_at)

    def clear(self) -> None:
        self._entry = None


class InMemoryUncachedRequestLog(UncachedRequestLog):

    def __init__(self):
        self._entries: list[UncachedRequest] = []

    def record(self, action: str, params: dict, caller: str, when: datetime) -> None:
        self._entries.append(UncachedRequest(action=action, params=dict(params), caller=caller, timestamp=when))

    def recent(self, limit: int = 50) -> list[UncachedRequest]:
        return list(reversed(self._entries))[:limit]


class InMemoryJobLease(JobLease):
    """Leases visible to every engine holding this object, in one process only."""

    def __init__(self):
        self._lock = threading.Lock()
        self._leases: dict[str, tuple[str, datetime]] = {}

    def acquire(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        with self._lock:
            current = self._leases.get(name)
            if current is not None and current[0] != holder and current[1] > now:
                return False
            self._leases[name] = (holder, now + ttl)
            return True

    def release(self, name: str, holder: str) -> None:
        with self._lock:
            current = self._leases.get(name)
            if current is not None and current[0] == holder:
                del self._leases[name]
