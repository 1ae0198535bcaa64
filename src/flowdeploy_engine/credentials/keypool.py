"""Round-robin pool of shared LLM API keys."""

import threading
from typing import Iterable, NamedTuple

from flowdeploy_engine.common.exceptions import ConfigurationError


class PooledKey(NamedTuple):
    key: str
    ref: str  # safe-to-log prefix


class LLMKeyPool:
    """Hands out keys in rotation to spread rate-limit exposure.

    One instance per process (see ``deps.get_key_pool``); the counter is
    process-local and starts over on restart.
    """

    def __init__(self, keys: Iterable[str]):
        self._keys = [k for k in keys if k]
        self._counter = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def next_key(self) -> PooledKey:
        if not self._keys:
            raise ConfigurationError("No LLM keys configured (FLOWDEPLOY_LLM_KEYS)")
        with self._lock:
            key = self._keys[self._counter % len(self._keys)]
            self._counter += 1
        return PooledKey(key=key, ref=f"{key[:10]}...")
