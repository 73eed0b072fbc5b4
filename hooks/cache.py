"""
Process-wide cache of successful fetch results.

Entries are keyed by operation identity plus serialized arguments, so
independent hooks requesting the same data share one result. Nothing is
evicted on a timer: an entry is replaced by the next write for its key, and
its age is checked against the caller's TTL when it is read.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float  # epoch milliseconds


def build_cache_key(operation_id: str, args: tuple, kwargs: Dict[str, Any]) -> str:
    """Stable key for one operation called with one set of arguments"""
    serialized = json.dumps([list(args), kwargs], sort_keys=True, default=str, separators=(",", ":"))
    return f"{operation_id}:{serialized}"


class ResponseCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._data: Dict[str, CacheEntry] = {}
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def put(self, key: str, data: Any) -> None:
        """Store or supersede the entry for ``key``."""
        self._data[key] = CacheEntry(key=key, data=data, timestamp=self._now_ms())

    def get(self, key: str, ttl_seconds: float) -> Optional[CacheEntry]:
        """Return the entry if it is younger than ``ttl_seconds``."""
        if ttl_seconds <= 0:
            return None
        entry = self._data.get(key)
        if not entry:
            return None
        if self._now_ms() - entry.timestamp >= ttl_seconds * 1000:
            return None
        return entry

    def invalidate(self, prefix: str = "") -> int:
        """Drop entries whose key starts with ``prefix``; returns how many."""
        keys = [k for k in self._data if k.startswith(prefix)]
        for k in keys:
            self._data.pop(k, None)
        return len(keys)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


RESPONSE_CACHE = ResponseCache()
