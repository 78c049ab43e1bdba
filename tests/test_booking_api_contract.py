"""
Adapter contract tests for BookingApi: both simulator and real.

The same contract is verified against:
  - SimulatorBookingApi  (always runs, no credentials needed)
  - NewbookClient        (skipped if NEWBOOK_USERNAME, NEWBOOK_PASSWORD or
                          NEWBOOK_API_KEY is not set)
"""

import os

import pytest

from newbook_cache.adapters.newbook_client import NewbookClient
from newbook_cache.adapters.simulator_newbook import SimulatorBookingApi
from newbook_cache.domain.settings import Credentials

from tests.contracts.booking_api_contract import BookingApiContract
from tests.contracts.record_store_contract import booking

# ---------------------------------------------------------------------------
# Simulator: always runs
# ---------------------------------------------------------------------------


class TestSimulatorBookingApiContract(BookingApiContract):

    def create_api(self):
        api = SimulatorBookingApi()
        api.inject_site({"site_id": 1, "site_name": "Site 1"})
        return api

    def test_staying_excludes_cancelled_and_no_show(self):
        api = SimulatorBookingApi()
        api.inject_booking(booking(1, "2026-06-01", "2026-06-05"))
        api.inject_booking(booking(2, "2026-06-01", "2026-06-05", status="cancelled"))
        api.inject_booking(booking(3, "2026-06-01", "2026-06-05", status="no_show"))

        staying = api.call("bookings_list", {"period_from": "2026-06-01", "period_to": "2026-06-03"})
        everything = api.call("bookings_list", {"period_from": "2026-06-01", "period_to": "2026-06-03",
                                                "list_type": "all"})

        assert [b["booking_id"] for b in staying.records] == [1]
        assert [b["booking_id"] for b in everything.records] == [1, 2, 3]

    def test_cancelled_list_uses_cancellation_date(self):
        api = SimulatorBookingApi()
        api.inject_booking(booking(1, "2026-09-01", "2026-09-05", status="cancelled",
                                   booking_cancelled="2026-05-20 10:00:00"))
        result = api.call("bookings_list", {"period_from": "2026-05-01", "period_to": "2026-05-31",
                                            "list_type": "cancelled"})
        assert [b["booking_id"] for b in result.records] == [1]

    def test_bookings_get_unknown_is_404(self):
        result = SimulatorBookingApi().call("bookings_get", {"booking_id": 42})
        assert result.success is False
        assert result.http_status == 404

    def test_fail_next_applies_once(self):
        api = SimulatorBookingApi()
        api.fail_next("http_error", "boom", http_status=500)

        first = api.call("sites_list", {})
        second = api.call("sites_list", {})

        assert (first.success, first.outcome, first.message, first.http_status) == (False, "http_error", "boom", 500)
        assert second.success is True
        assert api.call_count("sites_list") == 2

    def test_returned_records_are_copies(self):
        api = SimulatorBookingApi()
        api.inject_booking(booking(1, "2026-06-01", "2026-06-05"))
        api.call("bookings_get", {"booking_id": 1}).records[0]["booking_status"] = "cancelled"
        assert api.call("bookings_get", {"booking_id": 1}).records[0]["booking_status"] == "confirmed"


# ---------------------------------------------------------------------------
# Real NewBook API: skipped without credentials
# ---------------------------------------------------------------------------

USERNAME = os.environ.get("NEWBOOK_USERNAME", "")
PASSWORD = os.environ.get("NEWBOOK_PASSWORD", "")
API_KEY = os.environ.get("NEWBOOK_API_KEY", "")
REGION = os.environ.get("NEWBOOK_REGION", "au")

CREDS_AVAILABLE = bool(USERNAME) and bool(PASSWORD) and bool(API_KEY)


@pytest.mark.skipif(
    not CREDS_AVAILABLE,
    reason="NEWBOOK_USERNAME, NEWBOOK_PASSWORD or NEWBOOK_API_KEY not set",
)
class TestNewbookClientContract(BookingApiContract):

    def create_api(self):
        return NewbookClient(credentials=lambda: Credentials(USERNAME, PASSWORD, API_KEY, REGION))
