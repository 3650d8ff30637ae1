"""
Unit tests for the memoizing cache.
"""

import asyncio
import gc
import pytest
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from service_authorization.app.cache.memoized import MemoizedCache
from service_authorization.app.cache.data import DataCaches


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestMemoizedCache:
    """Test cases for MemoizedCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def loader(self):
        return AsyncMock(side_effect=lambda value: f"loaded:{value}")

    @pytest.mark.asyncio
    async def test_second_get_is_served_from_cache(self, loader):
        """A loaded value is returned without calling the loader again."""
        cache = MemoizedCache(loader, name="test")

        assert await cache.get("k", "a") == "loaded:a"
        assert await cache.get("k", "a") == "loaded:a"

        assert loader.await_count == 1
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_load(self):
        """Callers arriving while a load is in flight wait for it."""
        release = asyncio.Event()
        calls = []

        async def slow_loader(value):
            calls.append(value)
            await release.wait()
            return value.upper()

        cache = MemoizedCache(slow_loader, name="test")
        waiters = [asyncio.ensure_future(cache.get("k", "abc")) for _ in range(5)]
        await asyncio.sleep(0)

        assert cache.stats()["in_flight"] == 1
        release.set()
        results = await asyncio.gather(*waiters)

        assert results == ["ABC"] * 5
        assert calls == ["abc"]
        assert cache.stats()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_failed_load_is_shared_and_not_cached(self):
        """All waiters see the failure; the next call loads again."""
        release = asyncio.Event()
        attempts = []

        async def flaky_loader():
            attempts.append(1)
            await release.wait()
            if len(attempts) == 1:
                raise ConnectionError("store unavailable")
            return "recovered"

        cache = MemoizedCache(flaky_loader, name="test")
        waiters = [asyncio.ensure_future(cache.get("k")) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(result, ConnectionError) for result in results)
        assert "k" not in cache
        assert len(attempts) == 1

        assert await cache.get("k") == "recovered"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_entry_expires_after_max_age(self, loader, clock):
        """Entries older than max_age are reloaded."""
        cache = MemoizedCache(loader, name="test", max_age=10, clock=clock)

        await cache.get("k", "a")
        clock.advance(9.9)
        await cache.get("k", "a")
        assert loader.await_count == 1

        clock.advance(0.2)
        assert "k" not in cache
        await cache.get("k", "a")
        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_no_max_age_never_expires(self, loader, clock):
        """Without max_age entries live until evicted."""
        cache = MemoizedCache(loader, name="test", clock=clock)

        await cache.get("k", "a")
        clock.advance(10 ** 9)
        await cache.get("k", "a")

        assert loader.await_count == 1

    @pytest.mark.asyncio
    async def test_least_recently_used_entry_is_evicted(self, loader):
        """Inserting past capacity drops the least recently used key."""
        cache = MemoizedCache(loader, name="test", max_entries=2)

        await cache.get("a", "a")
        await cache.get("b", "b")
        await cache.get("a", "a")
        await cache.get("c", "c")

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2
        assert cache.stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self, loader):
        """Invalidated keys are reloaded on next access."""
        cache = MemoizedCache(loader, name="test")
        await cache.get("a", "a")
        await cache.get("b", "b")

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        cache.clear()

        assert len(cache) == 0
        await cache.get("b", "b")
        assert loader.await_count == 3

    @pytest.mark.asyncio
    async def test_clear_during_load_discards_its_result(self):
        """A load running when the cache is cleared answers its waiters but is not stored."""
        release = asyncio.Event()
        values = ["old", "new"]

        async def loader():
            value = values.pop(0)
            if value == "old":
                await release.wait()
            return value

        cache = MemoizedCache(loader, name="test")
        waiter = asyncio.ensure_future(cache.get("k"))
        await asyncio.sleep(0)

        cache.clear()
        release.set()

        assert await waiter == "old"
        assert "k" not in cache
        assert await cache.get("k") == "new"
        assert await cache.get("k") == "new"

    @pytest.mark.asyncio
    async def test_invalidate_during_load_discards_its_result(self):
        release = asyncio.Event()
        values = ["old", "new"]

        async def loader():
            value = values.pop(0)
            if value == "old":
                await release.wait()
            return value

        cache = MemoizedCache(loader, name="test")
        waiter = asyncio.ensure_future(cache.get("k"))
        await asyncio.sleep(0)

        cache.invalidate("k")
        fresh = await cache.get("k")
        release.set()

        assert await waiter == "old"
        assert fresh == "new"
        assert await cache.get("k") == "new"
        assert cache.stats()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_failure_after_all_waiters_cancelled_is_retrieved(self):
        """A shared load failing with nobody waiting leaves no unretrieved exception."""
        release = asyncio.Event()
        loop = asyncio.get_running_loop()
        reported = []
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))

        async def failing_loader():
            await release.wait()
            raise ConnectionError("store unavailable")

        try:
            cache = MemoizedCache(failing_loader, name="test")
            waiter = asyncio.ensure_future(cache.get("k"))
            await asyncio.sleep(0)
            load = cache._pending["k"]

            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

            release.set()
            await asyncio.wait([load])
            assert load.done()
            del load
            gc.collect()
        finally:
            loop.set_exception_handler(previous_handler)

        assert reported == []
        assert "k" not in cache

    def test_rejects_non_positive_capacity(self, loader):
        with pytest.raises(ValueError):
            MemoizedCache(loader, max_entries=0)

    @pytest.mark.asyncio
    async def test_records_metrics(self, loader):
        """Hits, misses and loads are exported per cache."""
        registry = CollectorRegistry()
        metrics = MetricsCollector("authorization", registry)
        cache = MemoizedCache(loader, name="groups", metrics=metrics)

        await cache.get("k", "a")
        await cache.get("k", "a")

        assert registry.get_sample_value("cache_misses_total", {"cache_type": "groups"}) == 1.0
        assert registry.get_sample_value("cache_hits_total", {"cache_type": "groups"}) == 1.0
        assert registry.get_sample_value(
            "cache_loads_total", {"cache_type": "groups", "status": "ok"}
        ) == 1.0


class TestDataCaches:
    """Test cases for DataCaches."""

    @pytest.mark.asyncio
    async def test_keys_by_source_fingerprint(self):
        """Stores with different fingerprints are cached separately."""
        first = AsyncMock()
        first.hash = "aaa"
        first.get_groups.return_value = ["first"]
        second = AsyncMock()
        second.hash = "bbb"
        second.get_groups.return_value = ["second"]

        caches = DataCaches(max_age=None)

        assert await caches.get_groups(first) == ["first"]
        assert await caches.get_groups(second) == ["second"]
        assert await caches.get_groups(first) == ["first"]
        assert first.get_groups.await_count == 1

    @pytest.mark.asyncio
    async def test_connections_sorted_case_insensitively(self):
        from service_authorization.app.models import Connection

        directory = AsyncMock()
        directory.hash = "idp"
        directory.get_connections.return_value = [
            Connection("c1", "zeta"),
            Connection("c2", "Alpha"),
            Connection("c3", "beta"),
        ]

        caches = DataCaches(max_age=10)
        connections = await caches.get_connections(directory)

        assert [conn.name for conn in connections] == ["Alpha", "beta", "zeta"]
        directory.get_connections.assert_awaited_once_with(fields="id,name,strategy")

    @pytest.mark.asyncio
    async def test_clear_drops_all_collections(self):
        store = AsyncMock()
        store.hash = None
        store.get_groups.return_value = []
        store.get_applications.return_value = []

        caches = DataCaches(max_age=None)
        await caches.get_groups(store)
        await caches.get_applications(store)
        caches.clear()

        stats = caches.stats()
        assert stats["groups"]["size"] == 0
        assert stats["applications"]["size"] == 0
