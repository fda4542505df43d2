"""
File Source

Reads records from a JSON file shaped as a list of
{"id": ..., "properties": {...}} objects with already-flat property values.
Used when no Notion database is configured.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Union

from ...common.errors import SourceFetchError
from .base import BaseSource, RawRecord

logger = logging.getLogger("portal.sync.file")

SAMPLE_DATA_PATH = Path(__file__).parent.parent / "data" / "sample_resources.json"


class FileSource(BaseSource):
    """Content source backed by a local JSON file"""

    def __init__(self, path: Union[str, Path] = SAMPLE_DATA_PATH):
        super().__init__("file")
        self.path = Path(path)

    async def fetch_all(self) -> List[RawRecord]:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            data = json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            raise SourceFetchError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(data, list):
            raise SourceFetchError(f"{self.path} must contain a JSON list")

        records = []
        for item in data:
            if not isinstance(item, dict):
                logger.warning("Skipping non-object entry in %s", self.path)
                continue
            records.append(
                RawRecord(
                    external_id=str(item.get("id") or ""),
                    fields=dict(item.get("properties") or {}),
                    last_edited=item.get("last_edited_time"),
                )
            )

        logger.info("Read %d records from %s", len(records), self.path)
        return records
