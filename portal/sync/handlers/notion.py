"""
Notion Source

Reads every page of a Notion database through the REST API and
flattens page properties into plain Python values.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ...common.errors import SourceFetchError
from .base import BaseSource, RawRecord

logger = logging.getLogger("portal.sync.notion")

NOTION_API_BASE = "https://api.notion.com/v1"
PAGE_SIZE = 100


def format_database_id(database_id: str) -> str:
    """Insert hyphens into an undashed 32-character Notion id"""
    database_id = database_id.strip()
    if len(database_id) == 32 and "-" not in database_id:
        return (
            f"{database_id[:8]}-{database_id[8:12]}-{database_id[12:16]}-"
            f"{database_id[16:20]}-{database_id[20:]}"
        )
    return database_id


def _plain_text(parts: List[Dict[str, Any]]) -> str:
    return "".join(p.get("plain_text") or p.get("text", {}).get("content", "") for p in parts or [])


def flatten_property(prop: Dict[str, Any]) -> Any:
    """
    Flatten one Notion property value.

    title/rich_text -> str, select/status -> str or None,
    multi_select -> list of names, date -> start date string,
    checkbox -> bool, number -> number, url/email -> str.
    Unknown property types flatten to None.
    """
    prop_type = prop.get("type", "")
    value = prop.get(prop_type)

    if prop_type in ("title", "rich_text"):
        return _plain_text(value)
    if prop_type in ("select", "status"):
        return value.get("name") if value else None
    if prop_type == "multi_select":
        return [v.get("name", "") for v in value or [] if v.get("name")]
    if prop_type == "date":
        return value.get("start") if value else None
    if prop_type in ("checkbox", "number", "url", "email"):
        return value

    return None


class NotionSource(BaseSource):
    """
    Content source backed by a Notion database.

    Pages are read with cursor pagination until has_more is false.
    """

    def __init__(
        self,
        api_key: str,
        database_id: str,
        api_version: str = "2022-06-28",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Notion source.

        Args:
            api_key: Notion integration token
            database_id: Database id, dashed or undashed
            api_version: Notion-Version header value
            timeout: Request timeout in seconds
            client: Optional pre-built httpx client (tests pass a mock transport)
        """
        super().__init__("notion")
        self._database_id = format_database_id(database_id)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": api_version,
            "Content-Type": "application/json",
        }
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def database_id(self) -> str:
        return self._database_id

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=NOTION_API_BASE,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def fetch_all(self) -> List[RawRecord]:
        client = self._get_client()
        url = f"/databases/{self._database_id}/query"
        records: List[RawRecord] = []
        cursor: Optional[str] = None

        while True:
            payload: Dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                payload["start_cursor"] = cursor

            try:
                response = await client.post(url, json=payload, headers=self._headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise SourceFetchError(
                    f"Notion query failed with HTTP {e.response.status_code}"
                ) from e
            except (httpx.HTTPError, ValueError) as e:
                raise SourceFetchError(f"Notion query failed: {e}") from e

            if not isinstance(data, dict) or not isinstance(data.get("results", []), list):
                raise SourceFetchError(
                    f"Notion query returned an unexpected payload: {type(data).__name__}"
                )

            try:
                records.extend(self._to_raw_record(page) for page in data.get("results", []))
            except (AttributeError, TypeError, KeyError) as e:
                raise SourceFetchError(f"Notion returned a malformed page: {e}") from e

            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        logger.info("Fetched %d pages from Notion database %s", len(records), self._database_id)
        return records

    def _to_raw_record(self, page: Dict[str, Any]) -> RawRecord:
        properties = page.get("properties", {})
        fields = {name: flatten_property(prop) for name, prop in properties.items()}
        return RawRecord(
            external_id=page.get("id", ""),
            fields=fields,
            last_edited=page.get("last_edited_time"),
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
