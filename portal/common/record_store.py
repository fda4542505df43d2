"""
Record Store

In-memory collection of Records keyed by internal id and external id.

Two writer classes share the store:
- the reconciler, which publishes whole snapshots with replace_all()
- usage tracking, which bumps one counter on one record

Both go through the same lock and neither rewrites the other's fields.
Readers always see either the old snapshot or the new one, never a mix.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .schemas.record import COUNTER_FIELDS, Record, RecordDraft, UsageCounter

logger = logging.getLogger("portal.common.record_store")


class RecordStore:
    """
    Process-wide record collection.

    Internal ids come from a monotonic counter and are never reused,
    even after a record is removed by a full replace.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[int, Record] = {}
        self._by_external_id: Dict[str, int] = {}
        self._next_id = 1
        self._version = 0
        self._last_synced: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def version(self) -> int:
        """Incremented on every content change (not on counter bumps)"""
        return self._version

    @property
    def last_synced(self) -> Optional[datetime]:
        return self._last_synced

    def all(self) -> List[Record]:
        """All records in internal id order"""
        with self._lock:
            records = self._records
        return [records[k] for k in sorted(records)]

    def get(self, record_id: int) -> Optional[Record]:
        with self._lock:
            return self._records.get(record_id)

    def get_by_external_id(self, external_id: str) -> Optional[Record]:
        with self._lock:
            record_id = self._by_external_id.get(external_id)
            return self._records.get(record_id) if record_id is not None else None

    def query(self, predicate: Callable[[Record], bool]) -> List[Record]:
        """Records matching predicate, in internal id order"""
        return [r for r in self.all() if predicate(r)]

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def create(self, draft: RecordDraft) -> Record:
        """Insert a new record. External id must not already exist."""
        with self._lock:
            if draft.external_id in self._by_external_id:
                raise ValueError(f"Duplicate external id: {draft.external_id}")

            record = Record(id=self._allocate_id(), **_draft_fields(draft))
            records = dict(self._records)
            records[record.id] = record
            by_external = dict(self._by_external_id)
            by_external[record.external_id] = record.id
            self._publish(records, by_external)
            return record

    def update(self, record_id: int, **fields) -> Optional[Record]:
        """Replace content fields of one record. Counters are not touched here."""
        forbidden = set(fields) & (COUNTER_FIELDS | {"id", "external_id"})
        if forbidden:
            raise ValueError(f"Fields cannot be updated directly: {sorted(forbidden)}")

        with self._lock:
            existing = self._records.get(record_id)
            if existing is None:
                return None

            updated = existing.model_copy(update=fields)
            records = dict(self._records)
            records[record_id] = updated
            self._publish(records, self._by_external_id)
            return updated

    def replace_all(self, drafts: Iterable[RecordDraft]) -> List[Record]:
        """
        Atomically publish a new full record set.

        Records whose external id is already present keep their internal id
        and their current usage counters; new external ids get fresh ids;
        records absent from drafts disappear.
        """
        drafts = list(drafts)
        seen = set()
        for draft in drafts:
            if draft.external_id in seen:
                raise ValueError(f"Duplicate external id in snapshot: {draft.external_id}")
            seen.add(draft.external_id)

        with self._lock:
            records: Dict[int, Record] = {}
            by_external: Dict[str, int] = {}

            for draft in drafts:
                current_id = self._by_external_id.get(draft.external_id)
                current = self._records.get(current_id) if current_id is not None else None

                if current is not None:
                    counters = {name: getattr(current, name) for name in COUNTER_FIELDS}
                    record = Record(id=current.id, **_draft_fields(draft), **counters)
                else:
                    record = Record(id=self._allocate_id(), **_draft_fields(draft))

                records[record.id] = record
                by_external[record.external_id] = record.id

            self._publish(records, by_external)
            self._last_synced = datetime.now(timezone.utc)
            logger.info("Published snapshot v%d with %d records", self._version, len(records))
            return [records[k] for k in sorted(records)]

    def increment(self, record_id: int, counter: UsageCounter) -> Optional[Record]:
        """Bump one usage counter. Returns the updated record or None if unknown."""
        counter = UsageCounter(counter)
        with self._lock:
            existing = self._records.get(record_id)
            if existing is None:
                return None

            updated = existing.model_copy(
                update={counter.value: getattr(existing, counter.value) + 1}
            )
            records = dict(self._records)
            records[record_id] = updated
            # Counters are not embeddable content: version stays put.
            self._publish(records, self._by_external_id, content_changed=False)
            return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _allocate_id(self) -> int:
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def _publish(
        self,
        records: Dict[int, Record],
        by_external: Dict[str, int],
        content_changed: bool = True,
    ) -> None:
        # Swap references, never mutate the dicts a reader may hold.
        self._records = records
        self._by_external_id = by_external
        if content_changed:
            self._version += 1


def _draft_fields(draft: RecordDraft) -> dict:
    """Source-owned fields of a draft (or of a Record passed as a draft)"""
    return draft.model_dump(exclude={"id"} | COUNTER_FIELDS)
