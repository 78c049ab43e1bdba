"""
Cache gateway: the entry point for every upstream API action.

Flow per cached action:
  1. Store lookup (point or range, depending on the action)
  2. Hit: return decrypted rows, cache_hit=True
  3. Empty stay or cancellation range inside a window the freshness
     oracle trusts: empty success, cache_hit=True, no upstream call.
     Placement-date windows are never backfilled, so an empty one always
     goes upstream.
  4. Otherwise: call upstream, upsert every returned booking, return the
     upstream answer with cache_hit=False

Actions outside the whitelist are always written to the audit trail and
either refused (default) or relayed verbatim without caching.

Failures are returned as GatewayResult values; nothing here raises into
the transport layer.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from newbook_cache.adapters.ports import BookingApi, UpstreamResult, safe_params
from newbook_cache.domain.booking import NOT_STAYING_STATUSES
from newbook_cache.domain.freshness import is_cancelled_window_trustworthy, is_window_trustworthy
from newbook_cache.domain.record_store import CacheStatistics, DateSummary, RecordStore
from newbook_cache.domain.settings import Settings
from newbook_cache.domain.state import (
    CheckpointStore,
    SitesCache,
    SyncCheckpoints,
    UncachedRequest,
    UncachedRequestLog,
)

CACHED_ACTIONS = ("bookings_list", "bookings_get", "sites_list")
SITES_TTL = timedelta(hours=24)

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CallerContext:
    """Who is asking. Already authenticated by the transport layer."""

    client_type: str = ""
    username: str = ""
    ip_address: str = ""
    route: str = ""
    method: str = ""
    caller: str = ""

    def describe(self) -> str:
        if self.client_type and self.route:
            text = f"{self.client_type} -> {self.route}"
            return f"{text} -> {self.caller}" if self.caller else text
        return self.caller or "unknown"


@dataclass
class GatewayConfig:
    api: BookingApi
    store: RecordStore
    sites: SitesCache
    checkpoints: CheckpointStore
    settings: Settings
    audit: UncachedRequestLog
    clock: Callable[[], datetime] = _utcnow


@dataclass
class GatewayResult:
    records: list[dict] = field(default_factory=list)
    success: bool = True
    message: str = ""
    cache_hit: bool = False
    http_status: int | None = None

    @classmethod
    def from_upstream(cls, result: UpstreamResult) -> "GatewayResult":
        return cls(
            records=result.records,
            success=result.success,
            message=result.message,
            cache_hit=False,
            http_status=result.http_status,
        )

    def as_dict(self) -> dict:
        """Upstream-shaped response body."""
        body = {
            "data": self.records,
            "success": self.success,
            "message": self.message,
            "_cache_hit": self.cache_hit,
        }
        if self.http_status is not None and not self.success:
            body["http_code"] = self.http_status
        return body


class CacheGateway:
    """
    Decides per request whether to answer from the encrypted store or
    from upstream.  Holds no state of its own beyond injected collaborators.
    """

    def __init__(self, config: GatewayConfig):
        self._cfg = config
        self._handlers = {
            "bookings_list": self._bookings_list,
            "bookings_get": self._bookings_get,
            "sites_list": self._sites_list,
        }
        # list_type -> (store lookup, oracle for an empty answer or None)
        self._list_lookups = {
            "staying": (
                lambda f, t: config.store.range_by_stay(f, t, statuses_excluded=NOT_STAYING_STATUSES),
                is_window_trustworthy,
            ),
            "all": (lambda f, t: config.store.range_by_stay(f, t), is_window_trustworthy),
            "cancelled": (config.store.range_by_cancelled_date, is_cancelled_window_trustworthy),
            "placed": (config.store.range_by_placed_date, None),
        }

    def handle(
        self,
        action: str,
        params: dict | None = None,
        force_refresh: bool = False,
        caller: CallerContext | None = None,
    ) -> GatewayResult:
        params = dict(params or {})
        caller = caller or CallerContext()

        log.debug(
            "Request: %s%s from %s",
            action, " (force_refresh)" if force_refresh else "", caller.describe(),
            extra={"context": {"username": caller.username, "ip_address": caller.ip_address}},
        )

        handler = self._handlers.get(action)
        if handler is None:
            return self._unknown_action(action, params, caller)

        if not self._cfg.settings.caching_enabled():
            log.debug("%s: caching disabled, relaying", action)
            return GatewayResult.from_upstream(self._cfg.api.call(action, params))

        return handler(params, force_refresh)

    # -- cached actions --------------------------------------------------------

    def _bookings_list(self, params: dict, force_refresh: bool) -> GatewayResult:
        if force_refresh:
            log.info("bookings_list: force_refresh=true, bypassing cache")
            return self._fetch_and_store("bookings_list", params)

        period_from = str(params.get("period_from") or "")[:10]
        period_to = str(params.get("period_to") or "")[:10]
        list_type = params.get("list_type") or "staying"

        entry = self._list_lookups.get(list_type)
        if entry is None or not period_from or not period_to:
            log.info("bookings_list: list_type=%s not answerable from cache", list_type)
            return self._fetch_and_store("bookings_list", params)

        lookup, trustworthy = entry
        cached = lookup(period_from, period_to)
        if params.get("booking_id"):
            wanted = str(params["booking_id"])
            cached = [b for b in cached if str(b.get("booking_id")) == wanted]

        if cached:
            log.info("bookings_list: CACHE HIT - %d bookings", len(cached))
            return GatewayResult(records=cached, success=True, cache_hit=True)

        cfg = self._cfg
        if trustworthy is not None and trustworthy(
            period_from, period_to, cfg.checkpoints.load(), cfg.settings.retention(), cfg.clock()
        ):
            log.info("bookings_list: CACHE HIT - empty window %s to %s is trusted", period_from, period_to)
            return GatewayResult(records=[], success=True, cache_hit=True)

        log.info(
            "bookings_list: CACHE MISS - calling upstream",
            extra={"context": {"period_from": period_from, "period_to": period_to, "list_type": list_type}},
        )
        return self._fetch_and_store("bookings_list", params)

    def _bookings_get(self, params: dict, force_refresh: bool) -> GatewayResult:
        try:
            booking_id = int(params.get("booking_id") or 0)
        except (TypeError, ValueError):
            booking_id = 0
        if booking_id <= 0:
            return GatewayResult(success=False, message="bookings_get requires a numeric booking_id")

        if force_refresh:
            log.info("bookings_get: force_refresh=true, bypassing cache for #%d", booking_id)
            return self._fetch_and_store("bookings_get", params)

        cached = self._cfg.store.get(booking_id)
        if cached is not None:
            log.info("bookings_get: CACHE HIT - booking #%d", booking_id)
            return GatewayResult(records=[cached], success=True, cache_hit=True)

        log.info("bookings_get: CACHE MISS - booking #%d", booking_id)
        return self._fetch_and_store("bookings_get", params)

    def _sites_list(self, params: dict, force_refresh: bool) -> GatewayResult:
        sites = self._cfg.sites
        if force_refresh:
            sites.clear()
            log.debug("sites_list: force_refresh=true, cleared cache")

        now = self._cfg.clock()
        entry = sites.get()
        if entry is not None:
            cached, cached_at = entry
            if now - cached_at < SITES_TTL:
                log.info("sites_list: CACHE HIT - %d sites", len(cached))
                return GatewayResult(records=cached, success=True, cache_hit=True)

        log.info("sites_list: CACHE MISS - calling upstream")
        result = self._cfg.api.call("sites_list", params)
        if result.success:
            sites.store(result.records, now)
            log.debug("sites_list: cached %d sites for 24 hours", len(result.records))
        return GatewayResult.from_upstream(result)

    def _fetch_and_store(self, action: str, params: dict) -> GatewayResult:
        result = self._cfg.api.call(action, params)
        if result.success:
            stored = sum(1 for booking in result.records if isinstance(booking, dict) and self._cfg.store.upsert(booking))
            if stored:
                log.info("Stored %d bookings from %s response in cache", stored, action)
        return GatewayResult.from_upstream(result)

    # -- everything else -------------------------------------------------------

    def _unknown_action(self, action: str, params: dict, caller: CallerContext) -> GatewayResult:
        cfg = self._cfg
        cfg.audit.record(action, safe_params(params), caller.describe(), cfg.clock())
        log.warning(
            "UNCACHED REQUEST: %s from %s",
            action, caller.describe(),
            extra={"context": {"action": action, "params": safe_params(params)}},
        )

        if not cfg.settings.allow_unknown_relay():
            log.warning("BLOCKED: unknown action %r - relay disabled", action)
            return GatewayResult(
                success=False,
                message=(
                    f"Unknown API action '{action}' not supported. Only bookings_list, "
                    "bookings_get, and sites_list are allowed. Enable the "
                    "'allow_unknown_action_relay' setting to relay this action."
                ),
            )

        log.info("Relaying unknown action %r to upstream (relay enabled)", action)
        return GatewayResult.from_upstream(cfg.api.call(action, params))

    # -- read / maintenance API ------------------------------------------------

    def get_statistics(self) -> CacheStatistics:
        return self._cfg.store.statistics(self._cfg.clock().date())

    def get_summary_by_date(self, year: int | None = None, month: int | None = None) -> list[DateSummary]:
        return self._cfg.store.summary_by_date(year=year, month=month)

    def get_checkpoints(self) -> SyncCheckpoints:
        return self._cfg.checkpoints.load()

    def get_uncached_requests(self, limit: int = 50) -> list[UncachedRequest]:
        return self._cfg.audit.recent(limit)

    def clear_all(self) -> int:
        removed = self._cfg.store.clear_all()
        self._cfg.sites.clear()
        log.info("All cache cleared (%d bookings)", removed)
        return removed

    def clear_one(self, booking_id: int) -> bool:
        removed = self._cfg.store.delete(booking_id)
        if removed:
            log.info("Cleared cache for booking #%d", booking_id)
        return removed

    def test_connection(self) -> UpstreamResult:
        return self._cfg.api.test_connection()
