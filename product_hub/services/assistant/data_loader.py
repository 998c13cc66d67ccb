"""
Catalog snapshot loading.

Every collection is fetched concurrently, each through its own session.
A loader that has been closed cancels whatever is still in flight and
never publishes again, even if a fetch completes after the close.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from product_hub.repositories.catalog_repository import (
    CoverageRepository,
    DataDictionaryRepository,
    EarningsRepository,
    FormCoverageRepository,
    FormRepository,
    NewsRepository,
    PricingStepRepository,
    ProductRepository,
    RuleRepository,
    TaskRepository,
)
from product_hub.schemas.catalog import CatalogSnapshot
from product_hub.services.cache import TTLCache
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

Fetcher = Callable[[], Awaitable[list[Any]]]
SnapshotListener = Callable[[CatalogSnapshot], None]

REPOSITORIES = {
    "products": ProductRepository,
    "coverages": CoverageRepository,
    "forms": FormRepository,
    "form_coverages": FormCoverageRepository,
    "pricing_steps": PricingStepRepository,
    "rules": RuleRepository,
    "data_dictionary": DataDictionaryRepository,
    "tasks": TaskRepository,
    "news": NewsRepository,
    "earnings": EarningsRepository,
}


def repository_fetchers(
    session_maker: async_sessionmaker[AsyncSession],
    products_cache: Optional[TTLCache] = None,
) -> dict[str, Fetcher]:
    """One fetcher per collection; the products read goes through ``products_cache``."""

    def make_fetcher(repository_cls) -> Fetcher:
        async def fetch() -> list[Any]:
            async with session_maker() as session:
                return await repository_cls(session).list_records()

        return fetch

    fetchers = {name: make_fetcher(cls) for name, cls in REPOSITORIES.items()}

    if products_cache is not None:
        load_products = fetchers["products"]

        async def cached_products() -> list[Any]:
            return await products_cache.get_or_load("products", load_products)

        fetchers["products"] = cached_products

    return fetchers


class CatalogSnapshotLoader:
    """Loads a :class:`CatalogSnapshot` and publishes it to ``on_update``."""

    def __init__(
        self,
        fetchers: dict[str, Fetcher],
        on_update: Optional[SnapshotListener] = None,
    ):
        unknown = set(fetchers) - set(CatalogSnapshot.model_fields)
        if unknown:
            raise ValueError(f"Unknown collections: {sorted(unknown)}")
        self.fetchers = fetchers
        self.on_update = on_update
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _fetch(self, name: str, fetcher: Fetcher) -> tuple[str, list[Any]]:
        rows = await fetcher()
        return name, rows

    async def load(self) -> Optional[CatalogSnapshot]:
        """Fetch every collection; returns None if closed before completion."""
        if self._closed:
            return None

        tasks = [
            asyncio.create_task(self._fetch(name, fetcher), name=f"fetch-{name}")
            for name, fetcher in self.fetchers.items()
        ]
        self._tasks.update(tasks)
        try:
            results = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            if not self._closed:
                raise
            LOGGER.info("Snapshot load cancelled", extra={"category": "DATA"})
            return None
        except Exception:
            for task in tasks:
                task.cancel()
            LOGGER.error("Snapshot load failed", exc_info=True, extra={"category": "DATA"})
            raise
        finally:
            self._tasks.difference_update(tasks)

        if self._closed:
            return None

        snapshot = CatalogSnapshot(**{name: tuple(rows) for name, rows in results})
        LOGGER.info(
            "Catalog snapshot loaded",
            extra={"category": "DATA", "counts": snapshot.counts()},
        )
        if self.on_update is not None:
            self.on_update(snapshot)
        return snapshot

    def close(self) -> None:
        """Cancel in-flight fetches and suppress any later publication."""
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            LOGGER.info(
                f"Cancelled {len(self._tasks)} in-flight collection fetches",
                extra={"category": "DATA"},
            )


class SnapshotSource:
    """Serves the current snapshot, reloading it once the cache entry expires.

    Owns the loaders it starts so that ``close`` at shutdown cancels any
    load still in flight.
    """

    CACHE_KEY = "catalog_snapshot"

    def __init__(self, fetchers: dict[str, Fetcher], cache: TTLCache):
        self.fetchers = fetchers
        self.cache = cache
        self._loaders: set[CatalogSnapshotLoader] = set()
        self._closed = False

    async def _load(self) -> CatalogSnapshot:
        loader = CatalogSnapshotLoader(self.fetchers)
        self._loaders.add(loader)
        try:
            snapshot = await loader.load()
        finally:
            self._loaders.discard(loader)
        if snapshot is None:
            raise RuntimeError("Snapshot source closed during load")
        return snapshot

    async def get(self) -> CatalogSnapshot:
        if self._closed:
            raise RuntimeError("Snapshot source is closed")
        return await self.cache.get_or_load(self.CACHE_KEY, self._load)

    def invalidate(self) -> None:
        self.cache.invalidate(self.CACHE_KEY)

    def close(self) -> None:
        self._closed = True
        for loader in list(self._loaders):
            loader.close()
