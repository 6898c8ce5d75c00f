# Overview: In-process TTL cache for expensive derived views (full menu tree, dashboard stats).

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable

MENU_CACHE_KEY = "menu:full"
DASHBOARD_CACHE_KEY = "dashboard:stats"

_DEFAULT_TTL = 300  # 5 minutes


class ResultCache:
    """
    Key-value cache with a TTL per entry.

    Values are stored JSON-encoded so callers never share mutable state with
    the cache; a get() always returns a fresh copy. Entries are best-effort:
    mutating pipelines call invalidate() after every successful commit.
    """

    def __init__(self, *, default_ttl: int = _DEFAULT_TTL, clock: Callable[[], float] | None = None):
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry and entry[1] > self._clock():
                self._hits += 1
                encoded = entry[0]
            else:
                if entry:
                    del self._entries[key]
                self._misses += 1
                return None
        return json.loads(encoded)

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        encoded = json.dumps(value, default=str)
        with self._lock:
            self._entries[key] = (encoded, self._clock() + ttl)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }
