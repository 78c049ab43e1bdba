import logging
import os

from newbook_cache.domain.settings import ConfigError, Settings
from newbook_cache.gateway import CacheGateway, GatewayConfig
from newbook_cache.sync import SyncEngine

_LEVELS = {
    "off": logging.CRITICAL + 1,
    "error": logging.ERROR,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ConfigError(f"environment variable {name!r} is not set")
    return value


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level (off/error/info/debug) to the package logger."""
    logging.getLogger("newbook_cache").setLevel(_LEVELS[settings.log_level()])


class Components:
    """
    Factory: the SQLite-backed object graph, configured from the environment.

    NEWBOOK_CACHE_SECRET           encryption secret (required)
    NEWBOOK_CACHE_PREVIOUS_SECRETS comma-separated secrets still accepted for decryption
    NEWBOOK_CACHE_DB_PATH          SQLite database path (default: data/newbook_cache.db)
    NEWBOOK_CACHE_BASE_URL         upstream REST base URL
    NEWBOOK_CACHE_TIMEOUT          upstream timeout in seconds (default: 30)
    plus every setting read by EnvSettings (credentials, retention, toggles).
    """

    def __init__(self, settings: Settings | None = None, db_path: str | None = None):
        from newbook_cache.adapters.aes_codec import AesGcmCodec
        from newbook_cache.adapters.env_settings import EnvSettings
        from newbook_cache.adapters.newbook_client import BASE_URL, DEFAULT_TIMEOUT, NewbookClient
        from newbook_cache.adapters.sqlite_record_store import SqliteRecordStore
        from newbook_cache.adapters.sqlite_state import (
            SqliteCheckpointStore,
            SqliteJobLease,
            SqliteSitesCache,
            SqliteUncachedRequestLog,
        )

        self.settings = settings or EnvSettings()
        db_path = db_path or os.environ.get("NEWBOOK_CACHE_DB_PATH", "data/newbook_cache.db")
        if db_path != ":memory:" and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)

        previous = [s.strip() for s in os.environ.get("NEWBOOK_CACHE_PREVIOUS_SECRETS", "").split(",")]
        codec = AesGcmCodec(_require_env("NEWBOOK_CACHE_SECRET"), previous_secrets=[s for s in previous if s])

        self.api = NewbookClient(
            credentials=self.settings.credentials,
            base_url=os.environ.get("NEWBOOK_CACHE_BASE_URL", BASE_URL),
            timeout=float(os.environ.get("NEWBOOK_CACHE_TIMEOUT", DEFAULT_TIMEOUT)),
        )
        self.store = SqliteRecordStore(codec, db_path=db_path)
        self.checkpoints = SqliteCheckpointStore(db_path)
        self.sites = SqliteSitesCache(db_path)
        self.audit = SqliteUncachedRequestLog(db_path)
        self.leases = SqliteJobLease(db_path)

    def gateway(self) -> CacheGateway:
        return CacheGateway(GatewayConfig(
            api=self.api,
            store=self.store,
            sites=self.sites,
            checkpoints=self.checkpoints,
            settings=self.settings,
            audit=self.audit,
        ))

    def engine(self) -> SyncEngine:
        return SyncEngine(
            api=self.api,
            store=self.store,
            checkpoints=self.checkpoints,
            settings=self.settings,
            leases=self.leases,
        )
