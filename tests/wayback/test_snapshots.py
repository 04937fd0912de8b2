"""Tests for SnapshotFetcher.

Covers:
- content retrieval through the raw id_ address with metadata extraction
- redirect to a different capture is reported as requested/actual
- 404 is re-raised with a snapshot-specific message
- caching is skipped when raw HTML is requested
"""

from __future__ import annotations

import httpx
import pytest
import respx

from wayback_observatory.core.exceptions import NotFoundError
from wayback_observatory.core.schemas.queries import SnapshotContentQuery
from wayback_observatory.wayback.snapshots import SnapshotFetcher

_RAW = "https://web.archive.org/web/20200101000000id_/http://example.com/"
_RESOLVED = "https://web.archive.org/web/20200103101010id_/http://example.com/"

_HTML = (
    "<html><head><title>Home</title>"
    '<meta name="description" content="A page"></head>'
    '<body><h1>Hello</h1><p>Some body text here.</p>'
    '<a href="/a">a</a><a href="https://elsewhere.net/">b</a></body></html>'
)


def _query(**overrides) -> SnapshotContentQuery:
    values = {"url": "http://example.com/", "timestamp": "20200101000000"}
    values.update(overrides)
    return SnapshotContentQuery.model_validate(values)


class TestGetSnapshotContent:
    @pytest.mark.asyncio
    async def test_extracts_metadata(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            result = await fetcher.get_snapshot_content(_query())

        assert result["timestamp"] == "20200101000000"
        assert result["formatted_date"] == "2020-01-01"
        assert result["wayback_url"] == "https://web.archive.org/web/20200101000000/http://example.com/"
        assert result["status_code"] == 200
        assert result["content_length"] == len(_HTML)
        assert result["metadata"]["title"] == "Home"
        assert result["metadata"]["meta_description"] == "A page"
        assert result["metadata"]["h1"] == ["Hello"]
        assert result["metadata"]["link_count"] == {"internal": 1, "external": 1}
        assert "Some body text here." in result["text_content"]
        assert "note" not in result
        assert "raw_html" not in result

    @pytest.mark.asyncio
    async def test_metadata_can_be_skipped(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            result = await fetcher.get_snapshot_content(_query(extractMetadata=False))

        assert "metadata" not in result
        assert "text_content" not in result

    @pytest.mark.asyncio
    async def test_text_is_truncated(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            result = await fetcher.get_snapshot_content(_query(maxContentLength=5))

        assert result["text_content"] == "Hello..."

    @pytest.mark.asyncio
    async def test_redirect_reports_closest_capture(self, wayback_client) -> None:
        """When the archive redirects, the resolved timestamp wins."""
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(
                return_value=httpx.Response(302, headers={"Location": _RESOLVED})
            )
            respx.get(_RESOLVED).mock(return_value=httpx.Response(200, text=_HTML))
            result = await fetcher.get_snapshot_content(_query())

        assert result["timestamp"] == "20200103101010"
        assert result["requested_timestamp"] == "20200101000000"
        assert result["note"] == (
            "Closest snapshot found. Requested: 20200101000000, Actual: 20200103101010"
        )

    @pytest.mark.asyncio
    async def test_missing_capture_raises_not_found(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(return_value=httpx.Response(404))
            with pytest.raises(NotFoundError) as exc_info:
                await fetcher.get_snapshot_content(_query())

        assert exc_info.value.message == (
            "Snapshot not found for http://example.com/ at 20200101000000"
        )

    @pytest.mark.asyncio
    async def test_result_is_cached(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            route = respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            await fetcher.get_snapshot_content(_query())
            await fetcher.get_snapshot_content(_query())

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_raw_html_bypasses_cache(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            route = respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            first = await fetcher.get_snapshot_content(_query(includeRawHtml=True))
            second = await fetcher.get_snapshot_content(_query(includeRawHtml=True))

        assert first["raw_html"] == _HTML
        assert second["raw_html"] == _HTML
        assert route.call_count == 2


class TestGetParsedContent:
    @pytest.mark.asyncio
    async def test_parses_capture(self, wayback_client) -> None:
        fetcher = SnapshotFetcher(wayback_client)

        with respx.mock:
            respx.get(_RAW).mock(return_value=httpx.Response(200, text=_HTML))
            parsed = await fetcher.get_parsed_content("http://example.com/", "20200101000000")

        assert parsed.title == "Home"
        assert len(parsed.links) == 2
