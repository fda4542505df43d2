"""
Embedding Index

Holds the embedded form of the RecordStore and decides when to rebuild it.

The index is stale until the first full pass completes and again after
every mark_stale(). Only one pass runs at a time; callers that arrive while
a pass is running join it. A mark_stale() that lands during a pass leaves
the index stale once that pass completes, so the next caller rebuilds.
"""

import asyncio
import logging
from typing import List, Optional

from ..common.record_store import RecordStore
from .embedder import EmbeddedRecord, EmbeddingGenerator

logger = logging.getLogger("portal.retriever.index")


class EmbeddingIndex:
    """Embedded snapshot of the store with a single-flight rebuild"""

    def __init__(self, store: RecordStore, generator: EmbeddingGenerator):
        self._store = store
        self._generator = generator
        self._records: List[EmbeddedRecord] = []
        self._needs_update = True
        self._task: Optional[asyncio.Task] = None
        self._built_version: Optional[int] = None

    @property
    def needs_update(self) -> bool:
        return self._needs_update

    @property
    def is_generating(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def records(self) -> List[EmbeddedRecord]:
        """Embedded records from the last completed pass"""
        return self._records

    @property
    def built_version(self) -> Optional[int]:
        """Store version the current records were built from"""
        return self._built_version

    def mark_stale(self) -> None:
        self._needs_update = True

    async def ensure_fresh(self) -> List[EmbeddedRecord]:
        """
        Return up-to-date embedded records, rebuilding first if needed.

        A running pass is joined rather than duplicated. Cancelling the
        caller does not cancel the shared pass.
        """
        if self.is_generating:
            await asyncio.shield(self._task)

        if self._needs_update:
            await asyncio.shield(self._start())

        return self._records

    def schedule_refresh(self) -> bool:
        """
        Start a background pass if the index is stale and idle.

        Returns:
            True if a pass was started
        """
        if not self._needs_update or self.is_generating:
            return False
        self._start()
        return True

    def _start(self) -> asyncio.Task:
        if self.is_generating:
            return self._task
        self._task = asyncio.create_task(self._rebuild())
        self._task.add_done_callback(self._on_done)
        return self._task

    async def _rebuild(self) -> None:
        self._needs_update = False
        version = self._store.version
        records = self._store.all()
        logger.info("Generating embeddings for %d records (store v%d)", len(records), version)

        try:
            embedded = await self._generator.embed_all(records)
        except BaseException:
            self._needs_update = True
            raise

        self._records = embedded
        self._built_version = version
        logger.info("Embedding index ready with %d records", len(embedded))

    @staticmethod
    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Embedding pass was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error("Embedding pass failed: %s", error, exc_info=error)
