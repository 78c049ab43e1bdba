from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

Outcome = Literal["ok", "transport_error", "http_error", "parse_error", "not_configured"]

# Only these request parameters may appear in logs or audit records.
SAFE_PARAM_KEYS = (
    "booking_id",
    "period_from",
    "period_to",
    "list_type",
    "check_from",
    "check_to",
    "status",
    "region",
)


def safe_params(params: dict) -> dict:
    """Copy of params reduced to the logging allow-list."""
    safe = {key: params[key] for key in SAFE_PARAM_KEYS if key in params}
    if "api_key" in params:
        safe["api_key"] = "(provided)"
    return safe


@dataclass
class UpstreamResult:
    """Outcome of one upstream API call. Failures are values, never raised."""

    records: list[dict] = field(default_factory=list)
    success: bool = True
    message: str = ""
    http_status: int | None = None
    outcome: Outcome = "ok"

    @classmethod
    def failure(cls, outcome: Outcome, message: str, http_status: int | None = None) -> "UpstreamResult":
        return cls(records=[], success=False, message=message, http_status=http_status, outcome=outcome)

    @property
    def responded(self) -> bool:
        """True if upstream answered at all (any outcome but transport/config)."""
        return self.outcome not in ("transport_error", "not_configured")


class BookingApi(ABC):
    """
    Port: how we talk to the upstream booking system.

    The gateway and the sync engine depend ONLY on this interface.
    They don't know or care whether calls go to the real NewBook REST API
    or an in-memory simulator.
    """

    @abstractmethod
    def call(self, action: str, params: dict) -> UpstreamResult:
        """Execute one action (bookings_list, bookings_get, sites_list, ...)."""
        ...

    def test_connection(self) -> UpstreamResult:
        """Cheapest authenticated call: list the sites."""
        return self.call("sites_list", {})
