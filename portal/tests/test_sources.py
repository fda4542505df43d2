"""Tests for content sources."""

import json

import httpx
import pytest

from portal.common.config import PortalConfig
from portal.common.errors import SourceFetchError
from portal.common.record_store import RecordStore
from portal.sync.handlers import (
    FileSource,
    NotionSource,
    SAMPLE_DATA_PATH,
    create_source,
    flatten_property,
    format_database_id,
)
from portal.sync.handlers.notion import NOTION_API_BASE
from portal.sync.reconciler import ContentReconciler


def _page(page_id, name):
    return {
        "id": page_id,
        "last_edited_time": "2025-01-01T00:00:00.000Z",
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": name}]},
            "Content Type": {"type": "select", "select": {"name": "Webinar"}},
            "Product": {"type": "multi_select", "multi_select": [{"name": "Temperature"}, {"name": "Current"}]},
            "Internal Use Only?": {"type": "checkbox", "checkbox": False},
            "URL/Link": {"type": "url", "url": "https://example.com"},
            "Date": {"type": "date", "date": {"start": "2024-01-02"}},
        },
    }


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=NOTION_API_BASE)


class TestNotionHelpers:
    def test_format_database_id(self):
        assert format_database_id("6f6e5a6c10e640e8acad05d281c38eb2") == "6f6e5a6c-10e6-40e8-acad-05d281c38eb2"
        assert format_database_id("6f6e5a6c-10e6-40e8-acad-05d281c38eb2") == "6f6e5a6c-10e6-40e8-acad-05d281c38eb2"

    def test_flatten_property(self):
        assert flatten_property({"type": "rich_text", "rich_text": [{"plain_text": "a"}, {"plain_text": "b"}]}) == "ab"
        assert flatten_property({"type": "select", "select": None}) is None
        assert flatten_property({"type": "status", "status": {"name": "Live"}}) == "Live"
        assert flatten_property({"type": "number", "number": 3}) == 3
        assert flatten_property({"type": "formula", "formula": {}}) is None


class TestNotionSource:
    @pytest.mark.asyncio
    async def test_paginates_until_has_more_false(self):
        requests = []

        def handler(request: httpx.Request):
            body = json.loads(request.content)
            requests.append(body)
            assert request.headers["Notion-Version"] == "2022-06-28"
            assert request.headers["Authorization"] == "Bearer secret"
            if "start_cursor" not in body:
                return httpx.Response(200, json={"results": [_page("p1", "One")], "has_more": True, "next_cursor": "c2"})
            return httpx.Response(200, json={"results": [_page("p2", "Two")], "has_more": False, "next_cursor": None})

        source = NotionSource("secret", "6f6e5a6c10e640e8acad05d281c38eb2", client=_client(handler))
        records = await source.fetch_all()

        assert [r.external_id for r in records] == ["p1", "p2"]
        assert records[0].fields["Name"] == "One"
        assert records[0].fields["Product"] == ["Temperature", "Current"]
        assert records[0].fields["Internal Use Only?"] is False
        assert records[0].fields["Date"] == "2024-01-02"
        assert requests[1]["start_cursor"] == "c2"
        assert requests[0]["page_size"] == 100

    @pytest.mark.asyncio
    async def test_http_error_raises_source_fetch_error(self):
        def handler(request):
            return httpx.Response(401, json={"message": "unauthorized"})

        source = NotionSource("bad", "db", client=_client(handler))
        with pytest.raises(SourceFetchError, match="401"):
            await source.fetch_all()

    @pytest.mark.asyncio
    async def test_transport_error_raises_source_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        source = NotionSource("secret", "db", client=_client(handler))
        with pytest.raises(SourceFetchError):
            await source.fetch_all()

    @pytest.mark.asyncio
    async def test_unexpected_payload_raises_source_fetch_error(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "object"])

        source = NotionSource("secret", "db", client=_client(handler))
        with pytest.raises(SourceFetchError, match="unexpected payload"):
            await source.fetch_all()

    @pytest.mark.asyncio
    async def test_malformed_page_raises_source_fetch_error(self):
        def handler(request):
            return httpx.Response(200, json={"results": [_page("p1", "One"), "oops"], "has_more": False})

        source = NotionSource("secret", "db", client=_client(handler))
        with pytest.raises(SourceFetchError, match="malformed page"):
            await source.fetch_all()

    @pytest.mark.asyncio
    async def test_bad_payload_leaves_store_untouched(self):
        payloads = [{"results": [_page("p1", "One")], "has_more": False}, {"results": "nope"}]

        def handler(request):
            return httpx.Response(200, json=payloads.pop(0))

        store = RecordStore()
        reconciler = ContentReconciler(NotionSource("secret", "db", client=_client(handler)), store)
        await reconciler.reconcile()

        with pytest.raises(SourceFetchError):
            await reconciler.reconcile()
        assert [r.external_id for r in store.all()] == ["p1"]


class TestFileSource:
    @pytest.mark.asyncio
    async def test_reads_bundled_sample(self):
        records = await FileSource(SAMPLE_DATA_PATH).fetch_all()
        assert len(records) == 8
        assert records[0].fields["Name"] == "Spotter Master Sales Deck"

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path):
        with pytest.raises(SourceFetchError):
            await FileSource(tmp_path / "missing.json").fetch_all()

    @pytest.mark.asyncio
    async def test_non_list_raises(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"id": "x"}))
        with pytest.raises(SourceFetchError):
            await FileSource(path).fetch_all()


class TestCreateSource:
    def test_notion_when_configured(self):
        cfg = PortalConfig()
        cfg.notion.api_key = "secret"
        cfg.notion.database_id = "db"
        assert isinstance(create_source(cfg), NotionSource)

    def test_fixture_when_not_configured(self, tmp_path):
        cfg = PortalConfig()
        cfg.notion.fixture_path = str(tmp_path / "x.json")
        source = create_source(cfg)
        assert isinstance(source, FileSource)
        assert source.path == tmp_path / "x.json"

    def test_sample_data_by_default(self):
        source = create_source(PortalConfig())
        assert source.path == SAMPLE_DATA_PATH
