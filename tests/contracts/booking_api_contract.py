"""
Adapter contract for BookingApi.

Any implementation of BookingApi (real NewBook client, in-memory simulator, ...)
must pass these tests.  Subclass this and provide create_api().  Every test
here is read-only so it is safe to run against a live account.
"""

from abc import ABC, abstractmethod

from newbook_cache.adapters.ports import BookingApi


class BookingApiContract(ABC):
    """Contract tests that every BookingApi implementation must satisfy."""

    @abstractmethod
    def create_api(self) -> BookingApi:
        """Return a fresh instance of the adapter under test."""
        ...

    def test_sites_list_returns_list(self):
        result = self.create_api().call("sites_list", {})
        assert result.success, result.message
        assert isinstance(result.records, list)
        assert result.outcome == "ok"

    def test_bookings_list_far_past_is_empty(self):
        api = self.create_api()
        # Nobody stayed in the year 2000 on a test account
        result = api.call("bookings_list", {
            "period_from": "2000-01-01 00:00:00",
            "period_to": "2000-01-02 23:59:59",
            "list_type": "staying",
        })
        assert result.success, result.message
        assert result.records == []

    def test_bookings_list_records_carry_booking_id(self):
        api = self.create_api()
        result = api.call("bookings_list", {
            "period_from": "2026-01-01 00:00:00",
            "period_to": "2026-12-31 23:59:59",
            "list_type": "all",
        })
        assert result.success, result.message
        assert all("booking_id" in b for b in result.records)

    def test_test_connection_succeeds(self):
        result = self.create_api().test_connection()
        assert result.success, result.message
        assert result.responded
