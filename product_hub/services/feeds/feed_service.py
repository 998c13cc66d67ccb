"""
Rate-limit aware feed caching.

Fresh reads are served from cache for ``ttl`` seconds. When the upstream
answers 429 the service enters a cooldown (at least ``cooldown`` seconds,
longer if Retry-After says so) during which it makes no upstream calls and
serves entries up to ``ttl + stale_extension`` old, flagged as stale.
Entries older than ``max_age`` are purged outright.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from product_hub.core.exceptions import APIClientError, RateLimitError
from product_hub.services.cache import TTLCache
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class FeedRead:
    items: list[Any]
    source: str
    stale: bool = False
    rate_limited: bool = False
    retry_after: Optional[float] = None
    error: Optional[str] = None


class FeedService:
    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[list[Any]]],
        ttl: float = 45 * 60,
        stale_extension: float = 90 * 60,
        max_age: float = 3 * 60 * 60,
        cooldown: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fetch = fetch
        self.stale_extension = stale_extension
        self.max_age = max_age
        self.cooldown = cooldown
        self._clock = clock
        self._cooldown_until = 0.0
        self.cache = TTLCache(ttl=ttl, clock=clock, name=f"{name}_feed")

    @property
    def cache_key(self) -> str:
        return self.name

    def cooldown_remaining(self) -> float:
        return max(0.0, self._cooldown_until - self._clock())

    def _fallback(self, error: str, rate_limited: bool) -> FeedRead:
        stale = self.cache.get(self.cache_key, max_age=self.cache.ttl + self.stale_extension)
        retry_after = self.cooldown_remaining() if rate_limited else None
        if stale is not None:
            LOGGER.info(
                f"Serving stale {self.name} feed",
                extra={"category": "CACHE", "age": self.cache.age(self.cache_key)},
            )
            return FeedRead(
                items=stale,
                source="stale",
                stale=True,
                rate_limited=rate_limited,
                retry_after=retry_after,
                error=error,
            )
        return FeedRead(
            items=[],
            source="empty",
            rate_limited=rate_limited,
            retry_after=retry_after,
            error=error,
        )

    async def read(self, force_refresh: bool = False) -> FeedRead:
        """Return feed items, going upstream only when the cache cannot answer."""
        self.cache.purge(self.max_age)

        if not force_refresh:
            cached = self.cache.get(self.cache_key)
            if cached is not None:
                return FeedRead(items=cached, source="cache")

        if self.cooldown_remaining() > 0:
            LOGGER.warning(
                f"{self.name} feed rate limit cooldown active",
                extra={"category": "CACHE", "remaining": round(self.cooldown_remaining(), 1)},
            )
            return self._fallback("Rate limit cooldown active", rate_limited=True)

        try:
            items = await self.fetch()
        except RateLimitError as e:
            wait = max(self.cooldown, e.retry_after or 0.0)
            self._cooldown_until = self._clock() + wait
            LOGGER.warning(
                f"{self.name} feed rate limited",
                extra={"category": "API", "retry_after": e.retry_after, "cooldown": wait},
            )
            return self._fallback(str(e), rate_limited=True)
        except APIClientError as e:
            LOGGER.error(
                f"{self.name} feed fetch failed",
                extra={"category": "API", "error": str(e)},
            )
            return self._fallback(str(e), rate_limited=False)

        self.cache.set(self.cache_key, items)
        LOGGER.info(
            f"Cached {len(items)} {self.name} feed items",
            extra={"category": "CACHE"},
        )
        return FeedRead(items=items, source="api")
