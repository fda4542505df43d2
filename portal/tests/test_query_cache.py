"""Tests for QueryEmbeddingCache."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from portal.retriever.query_cache import QueryEmbeddingCache


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


class TestQueryEmbeddingCache:
    @pytest.mark.asyncio
    async def test_same_normalized_query_embeds_once(self, clock):
        embed = AsyncMock(return_value=[1.0, 0.0])
        cache = QueryEmbeddingCache(embed, clock=clock)

        first = await cache.get("What is Smart Mooring?")
        second = await cache.get("  what is smart mooring?  ")

        assert first == second == [1.0, 0.0]
        embed.assert_awaited_once()
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refreshed(self, clock):
        embed = AsyncMock(side_effect=[[1.0], [2.0]])
        cache = QueryEmbeddingCache(embed, ttl=timedelta(hours=24), clock=clock)

        assert await cache.get("q") == [1.0]
        clock.advance(hours=23)
        assert await cache.get("q") == [1.0]
        clock.advance(hours=2)
        assert await cache.get("q") == [2.0]
        assert embed.await_count == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, clock):
        embed = AsyncMock(side_effect=[RuntimeError("boom"), [3.0]])
        cache = QueryEmbeddingCache(embed, clock=clock)

        with pytest.raises(RuntimeError):
            await cache.get("q")
        assert await cache.get("q") == [3.0]
        assert cache.stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_call(self, clock):
        calls = []

        async def embed(text):
            calls.append(text)
            await asyncio.sleep(0.05)
            return [1.0, 0.0]

        cache = QueryEmbeddingCache(embed, clock=clock)

        first, second = await asyncio.gather(
            cache.get("What is a smart mooring?"),
            cache.get("what is a smart mooring?  "),
        )

        assert first == second == [1.0, 0.0]
        assert len(calls) == 1
        assert cache.stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_failure_reaches_every_caller_and_is_not_cached(self, clock):
        async def fail(text):
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        cache = QueryEmbeddingCache(fail, clock=clock)

        results = await asyncio.gather(cache.get("q"), cache.get("Q"), return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_clear(self, clock):
        embed = AsyncMock(return_value=[1.0])
        cache = QueryEmbeddingCache(embed, clock=clock)
        await cache.get("q")
        cache.clear()
        await cache.get("q")
        assert embed.await_count == 2
        assert cache.stats() == {"hits": 0, "misses": 1, "hit_rate": 0.0, "size": 1}
