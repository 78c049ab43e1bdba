import logging
from datetime import datetime, timedelta, timezone

import pytest

from newbook_cache.adapters.env_settings import EnvSettings
from newbook_cache.adapters.memory_simulator import InMemorySettings
from newbook_cache.domain.settings import ConfigError, RetentionPolicy
from newbook_cache.factory import Components, configure_logging


def test_defaults():
    settings = InMemorySettings()
    assert settings.caching_enabled() is True
    assert settings.allow_unknown_relay() is False
    assert settings.retention() == RetentionPolicy(365, 30, 30)
    assert settings.sync_interval() == 20
    assert settings.log_level() == "info"
    assert settings.credentials().region == "au"
    assert settings.credentials().complete is False


@pytest.mark.parametrize("raw,expected", [("1", True), ("yes", True), ("ON", True), ("0", False), ("no", False)])
def test_boolean_parsing(raw, expected):
    assert InMemorySettings(caching_enabled=raw).caching_enabled() is expected


@pytest.mark.parametrize("raw,expected", [("5", 10), ("900", 300), ("45", 45), ("soon", 20)])
def test_sync_interval_clamped(raw, expected):
    assert InMemorySettings(sync_interval_seconds=raw).sync_interval() == expected


def test_unknown_log_level_falls_back():
    assert InMemorySettings(log_level="verbose").log_level() == "info"


def test_values_read_fresh_on_every_call():
    settings = InMemorySettings()
    settings.set("retention_future_days", 90)
    assert settings.retention().future_days == 90


def test_credentials_repr_hides_secrets():
    creds = InMemorySettings(username="u", password="pw-secret", api_key="api-secret").credentials()
    assert creds.complete is True
    assert "pw-secret" not in repr(creds)
    assert "api-secret" not in repr(creds)


def test_env_settings_reads_prefixed_variables():
    env = {"NEWBOOK_CACHE_RETENTION_PAST_DAYS": "14", "NEWBOOK_CACHE_CACHING_ENABLED": "false"}
    settings = EnvSettings(environ=env)
    assert settings.retention().past_days == 14
    assert settings.caching_enabled() is False

    env["NEWBOOK_CACHE_RETENTION_PAST_DAYS"] = "7"
    assert settings.retention().past_days == 7


def test_env_settings_override_wins():
    settings = EnvSettings(environ={"NEWBOOK_CACHE_SYNC_INTERVAL_SECONDS": "60"})
    settings.set("sync_interval_seconds", 30)
    assert settings.sync_interval() == 30


def test_components_require_secret(monkeypatch):
    monkeypatch.delenv("NEWBOOK_CACHE_SECRET", raising=False)
    with pytest.raises(ConfigError):
        Components(settings=InMemorySettings(), db_path=":memory:")


def test_components_wire_gateway_and_engine(monkeypatch, tmp_path):
    monkeypatch.setenv("NEWBOOK_CACHE_SECRET", "factory-secret")
    components = Components(settings=InMemorySettings(), db_path=str(tmp_path / "data" / "cache.db"))

    gateway = components.gateway()
    assert gateway.get_statistics().total == 0
    assert components.engine().run("cleanup").skipped is False
    assert gateway.get_checkpoints().last_cleanup is not None


def test_components_from_two_processes_share_job_leases(monkeypatch, tmp_path):
    monkeypatch.setenv("NEWBOOK_CACHE_SECRET", "factory-secret")
    db_path = str(tmp_path / "cache.db")
    scheduler_side = Components(settings=InMemorySettings(), db_path=db_path)
    admin_side = Components(settings=InMemorySettings(), db_path=db_path)

    now = datetime.now(timezone.utc)
    assert scheduler_side.leases.acquire("cleanup", "scheduler", now, timedelta(hours=2)) is True
    assert admin_side.engine().run("cleanup").skipped is True

    scheduler_side.leases.release("cleanup", "scheduler")
    assert admin_side.engine().run("cleanup").skipped is False


@pytest.fixture
def package_logger():
    logger = logging.getLogger("newbook_cache")
    saved = logger.level
    yield logger
    logger.setLevel(saved)


@pytest.mark.parametrize("level,expected", [
    ("off", logging.CRITICAL + 1),
    ("error", logging.ERROR),
    ("info", logging.INFO),
    ("debug", logging.DEBUG),
])
def test_configure_logging(package_logger, level, expected):
    configure_logging(InMemorySettings(log_level=level))
    assert package_logger.level == expected
