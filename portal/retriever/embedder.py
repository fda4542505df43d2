"""
Embedding Generator

Turns Records into vectors through the EmbeddingService.

Records are processed in fixed-size batches. Within a batch every call
runs concurrently, with call i starting i * stagger_seconds after the
first; batches are separated by batch_delay_seconds. Each record's call
is retried on its own, and a record that still fails is left out of the
result without failing the rest.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..common.embedding_service import EmbeddingService
from ..common.errors import DimensionMismatchError, EmbeddingCallError
from ..common.schemas.record import Record
from ..common.schemas.templates import render_embedding_text

logger = logging.getLogger("portal.retriever.embedder")


@dataclass(frozen=True)
class EmbeddedRecord:
    """A Record paired with the vector of its embedding text"""
    record: Record
    vector: np.ndarray

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


class EmbeddingGenerator:
    """
    Batched, staggered, per-record retried vectorization.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        batch_size: int = 20,
        stagger_seconds: float = 0.05,
        batch_delay_seconds: float = 0.5,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 0.5,
    ):
        """
        Args:
            embedding_service: Provider adapter used for every call
            batch_size: Records per concurrent batch
            stagger_seconds: Start offset between calls inside a batch
            batch_delay_seconds: Pause between batches
            retry_attempts: Attempts per record (1 disables retrying)
            retry_wait_seconds: Base of the exponential wait between attempts
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._service = embedding_service
        self.batch_size = batch_size
        self.stagger_seconds = stagger_seconds
        self.batch_delay_seconds = batch_delay_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_seconds = retry_wait_seconds

    @property
    def is_available(self) -> bool:
        return self._service.is_available

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed one text (used for queries).

        Raises:
            EmbeddingCallError: the service is unavailable or every attempt failed
        """
        if not self.is_available:
            raise EmbeddingCallError("Embedding service is not available")
        return await self._call_with_retry(text)

    async def embed_all(self, records: Sequence[Record]) -> List[EmbeddedRecord]:
        """
        Embed every record, preserving input order.

        Records whose call fails after all retries are logged and omitted.
        """
        records = list(records)
        if records and not self.is_available:
            logger.warning("Embedding service not available, skipping %d records", len(records))
            return []

        results: List[EmbeddedRecord] = []
        failed = 0

        for start in range(0, len(records), self.batch_size):
            if start > 0 and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)

            batch = records[start:start + self.batch_size]
            embedded = await asyncio.gather(
                *(self._embed_record(record, i * self.stagger_seconds) for i, record in enumerate(batch))
            )
            for item in embedded:
                if item is None:
                    failed += 1
                else:
                    results.append(item)

            logger.debug(
                "Embedded batch %d-%d of %d",
                start + 1, start + len(batch), len(records),
            )

        if failed:
            logger.warning("Embedded %d/%d records, %d failed", len(results), len(records), failed)
        else:
            logger.info("Embedded %d records", len(results))
        return results

    async def _embed_record(self, record: Record, delay: float) -> Optional[EmbeddedRecord]:
        if delay > 0:
            await asyncio.sleep(delay)

        text = render_embedding_text(record)
        try:
            vector = await self._call_with_retry(text)
        except (EmbeddingCallError, DimensionMismatchError) as e:
            logger.error("Failed to embed record %d (%s): %s", record.id, record.name, e)
            return None

        return EmbeddedRecord(record=record, vector=np.asarray(vector, dtype=float))

    async def _call_with_retry(self, text: str) -> List[float]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=8),
            retry=retry_if_exception_type(EmbeddingCallError),
            reraise=True,
        ):
            with attempt:
                return await self._service.embed_single(text)
