"""In-memory result cache with TTL expiry and bounded size."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_SIZE = 1000


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache counters."""

    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }


@dataclass
class _Entry(Generic[V]):
    value: V
    inserted_at: float


class ResultCache(Generic[V]):
    """Key-value cache with per-entry TTL and oldest-first eviction.

    Entries are kept in insertion order. Writing a key moves it to the
    newest position; once the number of entries exceeds ``max_size`` the
    oldest ones are evicted. An entry is stale once more than
    ``ttl_seconds`` have elapsed since it was written, and stale entries
    are dropped when read.

    Example:
        ```python
        cache: ResultCache[str] = ResultCache(ttl_seconds=60, max_size=100)
        cache.set("a", "value")
        assert cache.get("a") == "value"
        ```
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._ttl = float(ttl_seconds)
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str) -> V | None:
        """Return the cached value, or None if missing or stale."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() - entry.inserted_at > self._ttl:
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = _Entry(value=value, inserted_at=self._clock())
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)
            self._evictions += 1

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``. Returns the count removed."""
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_size,
            ttl_seconds=self._ttl,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[call-overload]
        if entry is None:
            return False
        return self._clock() - entry.inserted_at <= self._ttl
