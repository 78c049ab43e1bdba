from .ports import BookingApi, Outcome, UpstreamResult


def _day(value) -> str:
    return str(value or "")[:10]


class SimulatorBookingApi(BookingApi):
    """
    In-memory fake for testing. No mocking framework needed.

    Test helpers:
        inject_booking()   register a raw upstream booking dict
        inject_site()      register a site for sites_list
        fail_next()        make the next call(s) fail with a given outcome
        calls              list of (action, params) tuples, in call order
    """

    def __init__(self):
        self._bookings: dict[int, dict] = {}
        self._sites: list[dict] = []
        self._failures: list[UpstreamResult] = []
        self.calls: list[tuple[str, dict]] = []

    def inject_booking(self, booking: dict) -> None:
        self._bookings[int(booking["booking_id"])] = dict(booking)

    def inject_site(self, site: dict) -> None:
        self._sites.append(dict(site))

    def fail_next(self, outcome: Outcome = "transport_error", message: str = "simulated failure",
                  http_status: int | None = None, times: int = 1) -> None:
        for _ in range(times):
            self._failures.append(UpstreamResult.failure(outcome, message, http_status))

    def call_count(self, action: str | None = None) -> int:
        return sum(1 for name, _ in self.calls if action is None or name == action)

    def call(self, action: str, params: dict) -> UpstreamResult:
        self.calls.append((action, dict(params)))
        if self._failures:
            return self._failures.pop(0)

        if action == "bookings_list":
            return UpstreamResult(records=self._list(params))
        if action == "bookings_get":
            booking = self._bookings.get(int(params.get("booking_id") or 0))
            if booking is None:
                return UpstreamResult.failure("http_error", "Booking not found", http_status=404)
            return UpstreamResult(records=[dict(booking)])
        if action == "sites_list":
            return UpstreamResult(records=[dict(s) for s in self._sites])
        return UpstreamResult(records=[], message=f"simulated {action}")

    def _list(self, params: dict) -> list[dict]:
        date_from = _day(params.get("period_from"))
        date_to = _day(params.get("period_to"))
        list_type = params.get("list_type", "staying")

        def status(b: dict) -> str:
            return str(b.get("booking_status", "")).lower()

        def stays(b: dict) -> bool:
            return _day(b.get("booking_arrival")) <= date_to and _day(b.get("booking_departure")) > date_from

        def stamped(b: dict, key: str) -> bool:
            return bool(b.get(key)) and date_from <= _day(b.get(key)) <= date_to

        if list_type == "cancelled":
            selected = [b for b in self._bookings.values() if status(b) == "cancelled" and stamped(b, "booking_cancelled")]
        elif list_type == "placed":
            selected = [b for b in self._bookings.values() if stamped(b, "booking_placed")]
        elif list_type == "all":
            selected = [b for b in self._bookings.values() if stays(b)]
        else:
            selected = [
                b for b in self._bookings.values()
                if stays(b) and status(b) not in ("cancelled", "no_show")
            ]
        return [dict(b) for b in sorted(selected, key=lambda b: int(b["booking_id"]))]
