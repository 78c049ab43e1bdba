import json
import logging

import requests

from newbook_cache.domain.settings import Credentials

from .ports import BookingApi, UpstreamResult, safe_params

BASE_URL = "https://api.newbook.cloud/rest/"
DEFAULT_TIMEOUT = 30

# Upstream puts its error text in any one of these fields.
_ERROR_FIELDS = ("message", "error", "error_message")

log = logging.getLogger(__name__)


def _records(data) -> list[dict]:
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]


def _error_message(body: str, status: int) -> str:
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        for key in _ERROR_FIELDS:
            if parsed.get(key):
                return str(parsed[key])
    return f"API returned HTTP {status}"


class NewbookClient(BookingApi):
    """
    Adapter: real NewBook REST client.

    Credentials are fetched through `credentials` on every call so a
    settings change takes effect without rebuilding the client.
    """

    def __init__(
        self,
        credentials,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self._credentials = credentials
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def call(self, action: str, params: dict) -> UpstreamResult:
        creds: Credentials = self._credentials()
        if not creds.complete:
            log.error("API credentials not configured")
            return UpstreamResult.failure("not_configured", "API credentials not configured")

        body = dict(params)
        body["api_key"] = creds.api_key
        body["region"] = creds.region
        url = f"{self._base_url}{action}"

        log.debug("API request: %s", action, extra={"context": {"url": url, "params": safe_params(body)}})

        try:
            resp = self.session.post(
                url,
                json=body,
                auth=(creds.username, creds.password),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log.error("API error: %s", exc, extra={"context": {"action": action}})
            return UpstreamResult.failure("transport_error", str(exc) or exc.__class__.__name__)

        if resp.status_code != 200:
            message = _error_message(resp.text, resp.status_code)
            log.error(
                "API returned HTTP %d",
                resp.status_code,
                extra={"context": {
                    "action": action,
                    "response_code": resp.status_code,
                    "response_body": resp.text,
                    "error_message": message,
                }},
            )
            return UpstreamResult.failure("http_error", message, http_status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            log.error(
                "JSON parse error: %s",
                exc,
                extra={"context": {"action": action, "response_body": resp.text}},
            )
            return UpstreamResult.failure("parse_error", "Invalid API response", http_status=resp.status_code)

        if not isinstance(data, dict):
            log.error("Unexpected API payload for %s", action, extra={"context": {"response_body": resp.text}})
            return UpstreamResult.failure("parse_error", "Invalid API response", http_status=resp.status_code)

        if data.get("success") is False:
            message = next((str(data[k]) for k in _ERROR_FIELDS if data.get(k)), "API request failed")
            log.error("API rejected %s: %s", action, message, extra={"context": {"params": safe_params(body)}})
            return UpstreamResult.failure("http_error", message, http_status=resp.status_code)

        records = _records(data.get("data"))
        log.info("API success: %s - %d results", action, len(records))
        return UpstreamResult(
            records=records,
            success=True,
            message=str(data.get("message") or ""),
            http_status=resp.status_code,
        )
