"""
Query Embedding Cache

Maps normalized question text to its embedding vector for a bounded
time. A hit within the TTL returns the cached vector without any
embedding call; an expired entry counts as absent.

Concurrent misses for the same key share one embedding call.

Entries are only dropped when read after expiry or on clear(), so the
cache grows with the number of distinct questions asked.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger("portal.retriever.query_cache")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueryCacheEntry:
    vector: List[float]
    created_at: datetime


class QueryEmbeddingCache:
    """
    TTL cache in front of the query embedding call.

    Failed embedding calls are not cached, so the next request retries.
    """

    def __init__(
        self,
        embed_fn: Callable[[str], Awaitable[List[float]]],
        ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            embed_fn: Async callable producing the vector for a query
            ttl: How long an entry stays valid
            clock: Returns the current time (tests inject a fake one)
        """
        self._embed_fn = embed_fn
        self._ttl = ttl
        self._clock = clock or _utcnow
        self._entries: Dict[str, QueryCacheEntry] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def normalize(query: str) -> str:
        """Cache key for a query: trimmed and case-folded"""
        return query.strip().casefold()

    async def get(self, query: str) -> List[float]:
        """Return the vector for query, embedding it on a miss or after expiry"""
        key = self.normalize(query)
        now = self._clock()

        entry = self._entries.get(key)
        if entry is not None:
            if now - entry.created_at < self._ttl:
                self._hits += 1
                logger.debug("Query cache hit for %r", key)
                return entry.vector
            del self._entries[key]

        task = self._pending.get(key)
        if task is not None:
            self._hits += 1
            logger.debug("Joining in-flight embedding for %r", key)
        else:
            self._misses += 1
            task = asyncio.create_task(self._fill(key, query.strip()))
            self._pending[key] = task

        # Cancelling one caller leaves the shared call running
        return await asyncio.shield(task)

    async def _fill(self, key: str, text: str) -> List[float]:
        try:
            vector = await self._embed_fn(text)
            self._entries[key] = QueryCacheEntry(vector=vector, created_at=self._clock())
            return vector
        finally:
            self._pending.pop(key, None)

    def stats(self) -> Dict[str, float]:
        """Return cache statistics."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0,
            "size": len(self._entries),
        }

    def clear(self) -> None:
        """Clear the cache."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
