"""
Resource Query Engine

Filter, sort and paginate view over the RecordStore, plus the facet
values the filter UI offers and the most-used records.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..common.errors import ValidationError
from ..common.record_store import RecordStore
from ..common.schemas.record import Record, Visibility

logger = logging.getLogger("portal.retriever.query_engine")

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100
MAX_SEARCH_LENGTH = 200


class SortOrder(str, Enum):
    RELEVANCE = "relevance"
    POPULARITY = "popularity"
    NEWEST = "newest"
    OLDEST = "oldest"


class ResourceFilter(BaseModel):
    """Listing filter. Empty lists mean no constraint."""
    model_config = ConfigDict(extra="forbid")

    types: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    audiences: List[str] = Field(default_factory=list)
    solutions: List[str] = Field(default_factory=list)
    stages: List[str] = Field(default_factory=list)
    visibility: List[Visibility] = Field(default_factory=list)
    search: Optional[str] = Field(default=None, max_length=MAX_SEARCH_LENGTH)
    exclude_external_ids: List[str] = Field(default_factory=list)
    sort_by: SortOrder = SortOrder.RELEVANCE

    @classmethod
    def parse(cls, **values) -> "ResourceFilter":
        """
        Build a filter from untrusted input.

        Raises:
            ValidationError: a value is malformed
        """
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ValidationError("Invalid filter parameters", errors=e.errors(include_url=False)) from e

    def matches(self, record: Record) -> bool:
        if self.types and record.type not in self.types:
            return False
        if self.stages and record.stage not in self.stages:
            return False
        if self.products and not set(record.products) & set(self.products):
            return False
        if self.audiences and not set(record.audiences) & set(self.audiences):
            return False
        if self.solutions and not set(record.solutions) & set(self.solutions):
            return False
        if self.visibility and record.visibility not in self.visibility and record.visibility != Visibility.BOTH:
            return False
        if self.exclude_external_ids and record.external_id in self.exclude_external_ids:
            return False
        if self.search and self.search.strip():
            needle = self.search.strip().casefold()
            haystack = " ".join(filter(None, [record.name, record.summary, record.body])).casefold()
            if needle not in haystack:
                return False
        return True


@dataclass
class QueryPage:
    """One page of filtered records"""
    items: List[Record] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def sort_records(records: List[Record], sort_by: SortOrder) -> List[Record]:
    """Order records; ties always fall back to internal id"""
    if sort_by == SortOrder.POPULARITY:
        return sorted(records, key=lambda r: (-r.popularity, r.id))

    if sort_by in (SortOrder.NEWEST, SortOrder.OLDEST):
        sign = -1 if sort_by == SortOrder.NEWEST else 1

        def key(record: Record):
            parsed = _parse_date(record.date)
            if parsed is None:
                return (1, 0, record.id)
            return (0, sign * parsed.toordinal(), record.id)

        return sorted(records, key=key)

    return sorted(records, key=lambda r: r.id)


class ResourceQueryEngine:
    """Read-only listing queries over a RecordStore"""

    def __init__(self, store: RecordStore):
        self._store = store

    def query(
        self,
        resource_filter: Optional[ResourceFilter] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> QueryPage:
        """
        Filter, sort and paginate.

        Pages past the end return no items with the correct total.

        Raises:
            ValidationError: page < 1 or page_size outside 1..MAX_PAGE_SIZE
        """
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        resource_filter = resource_filter or ResourceFilter()
        matched = self._store.query(resource_filter.matches)
        ordered = sort_records(matched, resource_filter.sort_by)

        start = (page - 1) * page_size
        items = ordered[start:start + page_size]
        logger.debug("Filtered %d records, serving page %d with %d", len(ordered), page, len(items))
        return QueryPage(items=items, total=len(ordered), page=page, page_size=page_size)

    def get_facets(self) -> Dict[str, List[str]]:
        """Distinct non-empty values per filterable field, sorted"""
        facets = {
            "types": set(),
            "products": set(),
            "audiences": set(),
            "solutions": set(),
            "stages": set(),
            "visibility": set(),
        }
        for record in self._store.all():
            facets["types"].add(record.type)
            facets["products"].update(record.products)
            facets["audiences"].update(record.audiences)
            facets["solutions"].update(record.solutions)
            facets["stages"].add(record.stage)
            facets["visibility"].add(record.visibility.value)

        return {name: sorted(v for v in values if v and v.strip()) for name, values in facets.items()}

    def popular(self, limit: int = 5) -> List[Record]:
        """Records with any usage, most used first"""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        used = self._store.query(lambda r: r.popularity > 0)
        return sort_records(used, SortOrder.POPULARITY)[:limit]
