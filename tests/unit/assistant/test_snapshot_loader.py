"""Unit tests for concurrent catalog loading and cancellation."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import MagicMock, patch

import pytest

from product_hub.core.exceptions import DatabaseError
from product_hub.schemas.catalog import CatalogSnapshot, ProductRecord
from product_hub.services.assistant import data_loader
from product_hub.services.assistant.data_loader import (
    CatalogSnapshotLoader,
    SnapshotSource,
    repository_fetchers,
)
from product_hub.services.cache import TTLCache

PRODUCT = ProductRecord(id="p-1", name="Businessowners Policy")


def _empty_fetchers() -> dict:
    async def empty():
        return []

    return {name: empty for name in CatalogSnapshot.model_fields}


class TestCatalogSnapshotLoader:
    @pytest.mark.asyncio
    async def test_load_publishes_snapshot(self):
        fetchers = _empty_fetchers()

        async def products():
            return [PRODUCT]

        fetchers["products"] = products
        on_update = MagicMock()

        snapshot = await CatalogSnapshotLoader(fetchers, on_update=on_update).load()

        assert snapshot.products == (PRODUCT,)
        on_update.assert_called_once_with(snapshot)

    @pytest.mark.asyncio
    async def test_close_during_fetch_suppresses_update(self):
        started = asyncio.Event()
        fetchers = _empty_fetchers()

        async def slow_coverages():
            started.set()
            await asyncio.sleep(30)
            return []

        fetchers["coverages"] = slow_coverages
        on_update = MagicMock()
        loader = CatalogSnapshotLoader(fetchers, on_update=on_update)

        task = asyncio.create_task(loader.load())
        await started.wait()
        loader.close()

        assert await task is None
        on_update.assert_not_called()
        assert loader.closed is True

    @pytest.mark.asyncio
    async def test_closed_loader_never_fetches(self):
        fetch = MagicMock()
        loader = CatalogSnapshotLoader({"products": fetch}, on_update=MagicMock())
        loader.close()

        assert await loader.load() is None
        fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(self):
        cancelled = asyncio.Event()
        started = asyncio.Event()
        fetchers = _empty_fetchers()

        async def hanging():
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

        async def failing():
            await started.wait()
            raise DatabaseError("Failed listing Rule")

        fetchers["forms"] = hanging
        fetchers["rules"] = failing
        on_update = MagicMock()

        with pytest.raises(DatabaseError):
            await CatalogSnapshotLoader(fetchers, on_update=on_update).load()

        await asyncio.wait_for(cancelled.wait(), timeout=1)
        on_update.assert_not_called()

    def test_unknown_collection(self):
        with pytest.raises(ValueError):
            CatalogSnapshotLoader({"claims": MagicMock()})


class TestSnapshotSource:
    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self):
        calls = []
        fetchers = _empty_fetchers()

        async def products():
            calls.append(1)
            return [PRODUCT]

        fetchers["products"] = products
        source = SnapshotSource(fetchers, TTLCache(ttl=60))

        first = await source.get()
        second = await source.get()
        assert first == second
        assert len(calls) == 1

        source.invalidate()
        await source.get()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_closed_source(self):
        source = SnapshotSource(_empty_fetchers(), TTLCache(ttl=60))
        source.close()

        with pytest.raises(RuntimeError):
            await source.get()


class FakeRepository:
    reads = 0

    def __init__(self, session):
        self.session = session

    async def list_records(self):
        type(self).reads += 1
        return [PRODUCT]


@asynccontextmanager
async def fake_session():
    yield MagicMock()


@pytest.mark.asyncio
async def test_repository_fetchers_cache_products():
    FakeRepository.reads = 0
    with patch.dict(data_loader.REPOSITORIES, {"products": FakeRepository}):
        fetchers = repository_fetchers(fake_session, products_cache=TTLCache(ttl=300))

        assert await fetchers["products"]() == [PRODUCT]
        assert await fetchers["products"]() == [PRODUCT]

    assert FakeRepository.reads == 1
    assert set(fetchers) == set(CatalogSnapshot.model_fields)
