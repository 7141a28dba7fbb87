"""In-memory TTL cache shared by the geo resolver and the pipeline."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Cache keys.
NODES_KEY = "pnodes"
STATS_KEY = "network_stats"
GEO_KEY_PREFIX = "geo:"

# TTLs in seconds.
NODES_TTL = 30.0
STATS_TTL = 30.0
GEO_TTL = 7 * 24 * 60 * 60.0


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Key-value store with a per-entry time-to-live.

    Expiry is lazy: ``get`` and ``has`` evict an entry they find stale.
    ``cleanup`` sweeps everything at once and is only needed to reclaim
    memory.  Absence and expiry both read as a miss; no method raises.

    Args:
        clock: Monotonic time source in seconds.  Tests pass a fake one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store *value* under *key* for *ttl* seconds, replacing any entry."""
        with self._lock:
            self._entries[key] = _Entry(value, self._clock() + ttl)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for *key*, or *default* on a miss."""
        with self._lock:
            entry = self._live_entry(key)
        if entry is None:
            return default
        return entry.value

    def has(self, key: str) -> bool:
        """Return whether *key* holds a live entry."""
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Evict every expired entry.

        Returns:
            The number of entries removed.
        """
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Swept %d expired cache entr(ies)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        # An empty cache is still a cache.
        return True

    def _live_entry(self, key: str) -> _Entry | None:
        # Caller holds the lock.
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry
