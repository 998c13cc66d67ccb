"""In-process caches with an injected clock.

Usage:
    cache = TTLCache(ttl=300)
    products = await cache.get_or_load("products", repo.list_records)
    cache.invalidate("products")   # after a write

    memo = ValueMemo(build_summary)
    summary = memo(snapshot)       # recomputed only when snapshot changes by value
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class TTLCache:
    """Thread-safe TTL cache with optional LRU bound.

    Entries older than ``ttl`` are misses for ``get``. Callers that can
    tolerate staleness (e.g. while an upstream is rate limited) pass a
    larger ``max_age``.

    Attributes:
        ttl: Default time-to-live in seconds
        max_size: Maximum entries kept; least recently used are evicted
    """

    def __init__(
        self,
        ttl: float,
        max_size: Optional[int] = None,
        clock: Clock = time.monotonic,
        name: str = "cache",
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable, max_age: Optional[float] = None) -> Optional[Any]:
        """Return the cached value if younger than ``max_age`` (default ``ttl``)."""
        limit = self.ttl if max_age is None else max_age
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() - entry.stored_at >= limit:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since ``key`` was stored, or None."""
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else self._clock() - entry.stored_at

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
            self._entries.move_to_end(key)
            if self.max_size is not None:
                while len(self._entries) > self.max_size:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    LOGGER.debug(
                        f"Evicted {evicted!r} from {self.name}",
                        extra={"category": "CACHE"},
                    )

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value or await ``loader`` and cache its result."""
        cached = self.get(key)
        if cached is not None:
            return cached

        start_time = self._clock()
        value = await loader()
        self.set(key, value)
        LOGGER.info(
            f"Loaded {key!r} into {self.name}",
            extra={
                "category": "CACHE",
                "load_time_ms": int((self._clock() - start_time) * 1000),
            },
        )
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def clear(self) -> None:
        self.invalidate()

    def purge(self, max_age: float) -> int:
        """Remove entries older than ``max_age``; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.stored_at >= max_age]
            for key in expired:
                del self._entries[key]
        if expired:
            LOGGER.info(
                f"Purged {len(expired)} expired entries from {self.name}",
                extra={"category": "CACHE"},
            )
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
            }


class ValueMemo(Generic[T]):
    """Memoize a pure function on the value of its last arguments.

    Only the most recent call is remembered: the function is re-run
    whenever the arguments compare unequal to the previous ones.
    """

    _UNSET = object()

    def __init__(self, func: Callable[..., T]):
        self._func = func
        self._last_args: Any = self._UNSET
        self._last_result: Optional[T] = None
        self.computations = 0

    def __call__(self, *args: Any, **kwargs: Any) -> T:
        key: Tuple[Any, Dict[str, Any]] = (args, kwargs)
        if self._last_args is not self._UNSET and self._last_args == key:
            return self._last_result
        result = self._func(*args, **kwargs)
        self._last_args = key
        self._last_result = result
        self.computations += 1
        return result

    def reset(self) -> None:
        self._last_args = self._UNSET
        self._last_result = None
