"""
Content Reconciler

Brings the RecordStore in line with the content source.

Each run fetches the complete source set, maps it through the field
mapping table, and publishes the result with one atomic replace:
surviving external ids keep their internal id and usage counters,
new ones get fresh ids, missing ones are removed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..common.errors import RecordMappingError, SourceFetchError
from ..common.record_store import RecordStore
from ..common.schemas.record import RecordDraft
from .field_mapping import map_record
from .handlers.base import BaseSource, RawRecord

logger = logging.getLogger("portal.sync.reconciler")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation run"""
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)

    def to_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "removed": self.removed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def should_sync(
    last_synced: Optional[datetime],
    interval: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """True when no sync has happened yet or the interval has elapsed"""
    if last_synced is None:
        return True
    now = now or _utcnow()
    return now - last_synced > interval


class ContentReconciler:
    """
    Mirrors the content source into the RecordStore.

    Runs are serialized; a second caller waits for the first to finish
    and then performs its own run.
    """

    def __init__(self, source: BaseSource, store: RecordStore, index=None):
        """
        Args:
            source: Content source returning the full record set
            store: Store to publish into
            index: Optional embedding index, marked stale after each run
        """
        self._source = source
        self._store = store
        self._index = index
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def reconcile(self) -> ReconcileReport:
        """
        Run one reconciliation.

        Raises:
            SourceFetchError: the source failed, or returned nothing usable
                while there is something to lose. The store is untouched.
        """
        async with self._lock:
            report = ReconcileReport()
            raw_records = await self._source.fetch_all()
            report.fetched = len(raw_records)

            drafts = self._map_all(raw_records, report)

            if not drafts:
                if raw_records:
                    raise SourceFetchError(
                        f"None of the {len(raw_records)} fetched records could be mapped"
                    )
                if len(self._store):
                    raise SourceFetchError(
                        f"Source returned no records, keeping {len(self._store)} existing records"
                    )

            self._classify(drafts, report)
            self._store.replace_all(drafts)

            if self._index is not None:
                self._index.mark_stale()

            report.finished_at = _utcnow()
            logger.info(
                "Reconciled %d records: %d created, %d updated, %d unchanged, %d removed, %d skipped",
                report.fetched, report.created, report.updated,
                report.unchanged, report.removed, report.skipped,
            )
            return report

    def _map_all(self, raw_records: List[RawRecord], report: ReconcileReport) -> List[RecordDraft]:
        drafts: List[RecordDraft] = []
        seen = set()

        for raw in raw_records:
            try:
                draft = map_record(raw)
            except RecordMappingError as e:
                logger.warning("Skipping record: %s", e)
                report.skipped += 1
                report.errors.append(str(e))
                continue

            if draft.external_id in seen:
                message = f"Duplicate external id {draft.external_id}, keeping the first"
                logger.warning(message)
                report.skipped += 1
                report.errors.append(message)
                continue

            seen.add(draft.external_id)
            drafts.append(draft)

        return drafts

    def _classify(self, drafts: List[RecordDraft], report: ReconcileReport) -> None:
        current = {r.external_id: r for r in self._store.all()}
        incoming = set()

        for draft in drafts:
            incoming.add(draft.external_id)
            existing = current.get(draft.external_id)
            if existing is None:
                report.created += 1
            elif existing.content_equals(draft):
                report.unchanged += 1
            else:
                report.updated += 1

        report.removed = len(set(current) - incoming)
