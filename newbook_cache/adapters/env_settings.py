import os

from newbook_cache.domain.settings import Settings

ENV_PREFIX = "NEWBOOK_CACHE_"


class EnvSettings(Settings):
    """
    Adapter: settings from NEWBOOK_CACHE_<NAME> environment variables.

    The environment is read on every get(), so a value changed in-process
    (os.environ or set()) is picked up by the next operation.  set() keeps
    an override that wins over the environment.
    """

    def __init__(self, environ=None, prefix: str = ENV_PREFIX):
        self._environ = os.environ if environ is None else environ
        self._prefix = prefix
        self._overrides: dict[str, str] = {}

    def get(self, name: str) -> str | None:
        if name in self._overrides:
            return self._overrides[name]
        return self._environ.get(self._prefix + name.upper())

    def set(self, name: str, value) -> None:
        self._overrides[name] = str(value)
