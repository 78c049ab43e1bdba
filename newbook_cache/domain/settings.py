"""
Settings port: named configuration values, read fresh on every operation.

Retention windows and toggles can be changed while the process runs, so
nothing in the gateway or the sync engine keeps a copy across calls.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

MIN_SYNC_INTERVAL = 10
MAX_SYNC_INTERVAL = 300

DEFAULTS = {
    "caching_enabled": "true",
    "retention_future_days": "365",
    "retention_past_days": "30",
    "retention_cancelled_days": "30",
    "sync_interval_seconds": "20",
    "allow_unknown_action_relay": "false",
    "username": "",
    "password": "",
    "api_key": "",
    "region": "au",
    "log_level": "info",
}

LOG_LEVELS = ("off", "error", "info", "debug")

_TRUE = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    """A required setting is missing or unusable."""


@dataclass
class RetentionPolicy:
    future_days: int = 365
    past_days: int = 30
    cancelled_days: int = 30


@dataclass
class Credentials:
    username: str
    password: str
    api_key: str
    region: str = "au"

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password and self.api_key)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, region={self.region!r})"


class Settings(ABC):
    """
    Port: get/set named settings.

    Subclasses only provide raw string storage; the typed accessors below
    apply defaults and parsing on every call.
    """

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Raw value, or None when unset."""
        ...

    @abstractmethod
    def set(self, name: str, value) -> None:
        ...

    # -- typed accessors -----------------------------------------------------

    def _raw(self, name: str) -> str:
        value = self.get(name)
        if value is None or str(value).strip() == "":
            return DEFAULTS.get(name, "")
        return str(value).strip()

    def _bool(self, name: str) -> bool:
        return self._raw(name).lower() in _TRUE

    def _int(self, name: str) -> int:
        try:
            return int(self._raw(name))
        except ValueError:
            return int(DEFAULTS[name])

    def caching_enabled(self) -> bool:
        return self._bool("caching_enabled")

    def allow_unknown_relay(self) -> bool:
        return self._bool("allow_unknown_action_relay")

    def retention(self) -> RetentionPolicy:
        return RetentionPolicy(
            future_days=max(0, self._int("retention_future_days")),
            past_days=max(0, self._int("retention_past_days")),
            cancelled_days=max(0, self._int("retention_cancelled_days")),
        )

    def sync_interval(self) -> int:
        return min(MAX_SYNC_INTERVAL, max(MIN_SYNC_INTERVAL, self._int("sync_interval_seconds")))

    def credentials(self) -> Credentials:
        return Credentials(
            username=self._raw("username"),
            password=self._raw("password"),
            api_key=self._raw("api_key"),
            region=self._raw("region"),
        )

    def log_level(self) -> str:
        level = self._raw("log_level").lower()
        return level if level in LOG_LEVELS else DEFAULTS["log_level"]
