"""
Resource Record Schema

A Record is one content item mirrored from the external source.
Records are created in bulk by the reconciler; usage counters are the
only fields written from elsewhere.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class Visibility(str, Enum):
    """Who may see a resource"""
    INTERNAL = "internal"
    EXTERNAL = "external"
    BOTH = "both"


class UsageCounter(str, Enum):
    """Usage counters tracked per record"""
    VIEW = "view_count"
    SHARE = "share_count"
    DOWNLOAD = "download_count"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Models
# ============================================================================

class RecordDraft(BaseModel):
    """
    A record as mapped from the source, before the store assigns an id.
    """
    external_id: str = Field(..., min_length=1, description="Stable id from the source")
    name: str = Field(..., min_length=1)
    type: str = Field(default="Unknown", description="Category / content type")
    products: List[str] = Field(default_factory=list)
    audiences: List[str] = Field(default_factory=list)
    solutions: List[str] = Field(default_factory=list)
    stage: str = Field(default="Unknown", description="Lifecycle / buyer's journey stage")
    visibility: Visibility = Field(default=Visibility.BOTH)
    summary: str = Field(default="")
    body: Optional[str] = Field(default=None, description="Long-form text used for embedding")
    url: str = Field(default="#")
    date: Optional[str] = Field(default=None, description="ISO date (YYYY-MM-DD)")
    last_synced: datetime = Field(default_factory=_utcnow)

    def content_equals(self, other: "RecordDraft") -> bool:
        """Compare source-owned fields, ignoring sync time, ids and counters"""
        return self.model_dump(include=CONTENT_FIELDS) == other.model_dump(include=CONTENT_FIELDS)


class Record(RecordDraft):
    """A record held by the store"""
    id: int = Field(..., ge=1, description="Internal id, never reused")
    view_count: int = Field(default=0, ge=0)
    share_count: int = Field(default=0, ge=0)
    download_count: int = Field(default=0, ge=0)

    @property
    def popularity(self) -> int:
        """Sum of the three usage counters"""
        return self.view_count + self.share_count + self.download_count

    @property
    def embeddable_text(self) -> str:
        from .templates import render_embedding_text
        return render_embedding_text(self)


CONTENT_FIELDS = {
    "external_id", "name", "type", "products", "audiences", "solutions",
    "stage", "visibility", "summary", "body", "url", "date",
}

COUNTER_FIELDS = {c.value for c in UsageCounter}
