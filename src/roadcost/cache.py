from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .models import PriceResult
from .units import normalize_unit

DEFAULT_TTL_SECONDS = 24 * 60 * 60

CacheKey = Tuple[str, str]


def cache_key(item_name: str, unit: str) -> CacheKey:
    return (str(item_name or "").lower().strip(), normalize_unit(unit))


@dataclass(frozen=True)
class _Entry:
    result: PriceResult
    stored_at: float


class PriceCache:
    """In-memory price cache keyed by (item name, canonical unit).

    Entries expire after ``ttl_seconds``.  Writers race last-write-wins; the
    lock only protects the dictionary itself.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _fresh(self, entry: _Entry, now: float) -> bool:
        return self.ttl_seconds <= 0 or (now - entry.stored_at) < self.ttl_seconds

    def get(self, item_name: str, unit: str) -> Optional[PriceResult]:
        """Exact key first, then a same-unit entry whose name prefixes (or is prefixed by) the query.

        Prefix hits only serve official prices; an estimate answers its own key alone.
        """
        key = cache_key(item_name, unit)
        if not key[0]:
            return None
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if self._fresh(entry, now):
                    return entry.result
                del self._entries[key]
            for (name, cached_unit), candidate in list(self._entries.items()):
                if cached_unit != key[1]:
                    continue
                if not self._fresh(candidate, now):
                    del self._entries[(name, cached_unit)]
                    continue
                if not candidate.result.official:
                    continue
                if name.startswith(key[0]) or key[0].startswith(name):
                    return candidate.result
        return None

    def put(self, item_name: str, unit: str, result: PriceResult) -> None:
        key = cache_key(item_name, unit)
        if not key[0]:
            return
        with self._lock:
            self._entries[key] = _Entry(result=result, stored_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["PriceCache", "cache_key", "DEFAULT_TTL_SECONDS"]
