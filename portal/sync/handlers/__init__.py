"""
Content Sources

Each source returns the complete current record set as RawRecords.

Available Sources:
- NotionSource: Notion database over the REST API
- FileSource: local JSON file (sample data by default)
"""

import logging

from .base import BaseSource, RawRecord
from .file import FileSource, SAMPLE_DATA_PATH
from .notion import NotionSource, flatten_property, format_database_id

logger = logging.getLogger("portal.sync.handlers")


def create_source(config) -> BaseSource:
    """
    Build the content source from a PortalConfig.

    Notion when api_key and database_id are set, otherwise the configured
    fixture file, otherwise the bundled sample data.
    """
    notion = config.notion
    if notion.is_configured:
        return NotionSource(
            api_key=notion.api_key,
            database_id=notion.database_id,
            api_version=notion.api_version,
            timeout=notion.timeout,
        )

    if notion.fixture_path:
        logger.info("Notion not configured, reading records from %s", notion.fixture_path)
        return FileSource(notion.fixture_path)

    logger.info("Notion not configured, using bundled sample data")
    return FileSource(SAMPLE_DATA_PATH)


__all__ = [
    "BaseSource",
    "RawRecord",
    "FileSource",
    "NotionSource",
    "SAMPLE_DATA_PATH",
    "create_source",
    "flatten_property",
    "format_database_id",
]
