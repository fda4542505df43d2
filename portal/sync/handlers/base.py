"""
Base Source

Abstract base class for content sources.
A source returns the complete current record set on every fetch;
mapping into Records happens later, in the reconciler.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class RawRecord:
    """
    One record as delivered by a content source.

    fields holds flattened property values keyed by the source's own
    property names (e.g. "Name", "Stage in Buyer's Journey").
    """
    external_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    last_edited: Optional[str] = None

    @property
    def last_edited_at(self) -> Optional[datetime]:
        """Parse last_edited to datetime"""
        if not self.last_edited:
            return None
        try:
            return datetime.fromisoformat(self.last_edited.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None


class BaseSource(ABC):
    """
    Abstract base class for content sources.

    Each source must implement:
    - fetch_all: Return every record currently in the source
    """

    def __init__(self, source_name: str):
        """
        Initialize source.

        Args:
            source_name: Name of the source (e.g., "notion", "file")
        """
        self.source_name = source_name

    @abstractmethod
    async def fetch_all(self) -> List[RawRecord]:
        """
        Fetch the complete current record set.

        Returns:
            All records in the source

        Raises:
            SourceFetchError: the source is unreachable or rejected the request
        """
        pass

    async def close(self) -> None:
        """Release any held connections. Default: nothing to release."""
        return None
