"""Tests for CardCache -- TTL, bounded shards and fetch coalescing."""

from __future__ import annotations

import asyncio

import pytest

from glim.core.identifier import RepositoryIdentifier
from glim.core.types import RenderFormat
from glim.pipeline.cache import CardCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _ident(i: int) -> RepositoryIdentifier:
    return RepositoryIdentifier("owner", f"repo-{i}")


# ---------------------------------------------------------------------------
# Get / put
# ---------------------------------------------------------------------------


class TestGetPut:
    def test_miss_then_hit(self, octocat):
        cache = CardCache()
        assert cache.get(octocat, RenderFormat.PNG) is None
        cache.put(octocat, RenderFormat.PNG, b"png-bytes")
        assert cache.get(octocat, RenderFormat.PNG) == b"png-bytes"
        assert len(cache) == 1

    def test_keyed_by_format(self, octocat):
        cache = CardCache()
        cache.put(octocat, RenderFormat.PNG, b"png")
        cache.put(octocat, RenderFormat.WEBP, b"webp")
        assert cache.get(octocat, RenderFormat.PNG) == b"png"
        assert cache.get(octocat, RenderFormat.WEBP) == b"webp"
        assert cache.get(octocat, RenderFormat.GIF) is None
        assert len(cache) == 2

    def test_case_insensitive_identifier(self):
        cache = CardCache()
        cache.put(RepositoryIdentifier("Octocat", "Hello-World"), RenderFormat.PNG, b"x")
        assert cache.get(RepositoryIdentifier("octocat", "hello-world"), RenderFormat.PNG) == b"x"

    def test_last_insert_wins(self, octocat):
        cache = CardCache()
        cache.put(octocat, RenderFormat.PNG, b"old")
        cache.put(octocat, RenderFormat.PNG, b"new")
        assert cache.get(octocat, RenderFormat.PNG) == b"new"
        assert len(cache) == 1

    def test_clear(self, octocat):
        cache = CardCache()
        cache.put(octocat, RenderFormat.PNG, b"x")
        cache.clear()
        assert len(cache) == 0

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            CardCache(shards=0)
        with pytest.raises(ValueError):
            CardCache(max_entries=0)


# ---------------------------------------------------------------------------
# Expiry and bounds
# ---------------------------------------------------------------------------


class TestExpiry:
    def test_entry_expires_after_ttl(self, octocat):
        clock = FakeClock()
        cache = CardCache(ttl_seconds=60, clock=clock)
        cache.put(octocat, RenderFormat.PNG, b"x")
        clock.now += 59
        assert cache.get(octocat, RenderFormat.PNG) == b"x"
        clock.now += 1
        assert cache.get(octocat, RenderFormat.PNG) is None
        assert len(cache) == 0

    def test_cleanup_removes_only_expired(self):
        clock = FakeClock()
        cache = CardCache(ttl_seconds=60, clock=clock)
        cache.put(_ident(1), RenderFormat.PNG, b"old")
        clock.now += 30
        cache.put(_ident(2), RenderFormat.PNG, b"new")
        clock.now += 31
        assert cache.cleanup() == 1
        assert cache.get(_ident(1), RenderFormat.PNG) is None
        assert cache.get(_ident(2), RenderFormat.PNG) == b"new"


class TestBounds:
    def test_single_shard_evicts_oldest_insert(self):
        cache = CardCache(max_entries=2, shards=1)
        cache.put(_ident(1), RenderFormat.PNG, b"1")
        cache.put(_ident(2), RenderFormat.PNG, b"2")
        cache.get(_ident(1), RenderFormat.PNG)  # reads do not refresh
        cache.put(_ident(3), RenderFormat.PNG, b"3")
        assert len(cache) == 2
        assert cache.get(_ident(1), RenderFormat.PNG) is None
        assert cache.get(_ident(2), RenderFormat.PNG) == b"2"
        assert cache.get(_ident(3), RenderFormat.PNG) == b"3"

    def test_total_size_bounded(self):
        cache = CardCache(max_entries=16, shards=4)
        for i in range(200):
            cache.put(_ident(i), RenderFormat.PNG, b"x")
        assert len(cache) <= 16


# ---------------------------------------------------------------------------
# Coalescing
# ---------------------------------------------------------------------------


class TestCoalesce:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self, octocat):
        cache = CardCache()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return "metadata"

        futures = [cache.coalesce(octocat, factory) for _ in range(5)]
        assert cache.in_flight() == 1
        results = await asyncio.gather(*futures)
        assert results == ["metadata"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_slot_released_after_completion(self, octocat):
        cache = CardCache()

        async def factory():
            return 1

        await cache.coalesce(octocat, factory)
        await asyncio.sleep(0)  # let the done callback run
        assert cache.in_flight() == 0

    @pytest.mark.asyncio
    async def test_failure_released_and_not_retained(self, octocat):
        cache = CardCache()
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.coalesce(octocat, failing)
        await asyncio.sleep(0)
        assert cache.in_flight() == 0

        with pytest.raises(RuntimeError):
            await cache.coalesce(octocat, failing)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_different_repositories_not_shared(self):
        cache = CardCache()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)

        await asyncio.gather(cache.coalesce(_ident(1), factory), cache.coalesce(_ident(2), factory))
        assert calls == 2

    @pytest.mark.asyncio
    async def test_completed_result_reused_until_ttl(self, octocat):
        clock = FakeClock()
        cache = CardCache(ttl_seconds=60, clock=clock)
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            return f"metadata-{calls}"

        assert await cache.coalesce(octocat, factory) == "metadata-1"
        await asyncio.sleep(0)
        clock.now += 59
        assert await cache.coalesce(octocat, factory) == "metadata-1"
        assert calls == 1

        clock.now += 1
        assert await cache.coalesce(octocat, factory) == "metadata-2"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cleanup_and_clear_drop_fetched_results(self, octocat):
        clock = FakeClock()
        cache = CardCache(ttl_seconds=60, clock=clock)
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1

        await cache.coalesce(octocat, factory)
        await asyncio.sleep(0)
        cache.clear()
        await cache.coalesce(octocat, factory)
        await asyncio.sleep(0)
        clock.now += 60
        cache.cleanup()
        clock.now -= 60
        await cache.coalesce(octocat, factory)
        assert calls == 3


class TestStats:
    def test_stats(self, octocat):
        cache = CardCache()
        cache.put(octocat, RenderFormat.PNG, b"x")
        cache.put(octocat, RenderFormat.GIF, b"y")
        assert cache.stats() == {"entries": 2, "in_flight": 0}
