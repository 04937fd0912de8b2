"""Tests for CdxIndex snapshot listings, counts, closest match and site URLs.

Covers:
- get_snapshots() builds the CDX query from SnapshotsQuery
- get_snapshots() maps rows positionally with defaults and a date range
- get_snapshots() results are cached
- get_snapshot_count() counts data rows and tolerates garbage
- find_closest_snapshot() narrow query first, broad fallback second
- get_site_urls() collapse vs. capture-count modes
- get_site_urls() resume-key truncation, subdomains, histograms and limit
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
import respx

from wayback_observatory.core.exceptions import ParseError
from wayback_observatory.core.schemas.queries import SiteUrlsQuery, SnapshotsQuery
from wayback_observatory.wayback.cdx import CdxIndex
from wayback_observatory.wayback.config import WB_CDX_BASE_URL

SNAPSHOT_HEADER = ["timestamp", "original", "mimetype", "statuscode", "digest", "length"]
SITE_HEADER = ["original", "timestamp", "statuscode", "mimetype"]


def _body(header: list[str], rows: list[list[Any]]) -> str:
    return json.dumps([header, *rows])


def _snapshot_row(timestamp: str, digest: str = "AAAA") -> list[str]:
    return [timestamp, "http://example.com/", "text/html", "200", digest, "1234"]


# ---------------------------------------------------------------------------
# get_snapshots
# ---------------------------------------------------------------------------


class TestGetSnapshots:
    @pytest.mark.asyncio
    async def test_query_parameters(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            await cdx.get_snapshots(
                SnapshotsQuery.model_validate(
                    {
                        "url": "example.com",
                        "matchType": "prefix",
                        "from": "2020",
                        "to": "2021-06-30",
                        "statusFilter": "3xx",
                        "collapse": "monthly",
                        "limit": 50,
                    }
                )
            )

        params = route.calls.last.request.url.params
        assert params["url"] == "example.com"
        assert params["matchType"] == "prefix"
        assert params["from"] == "20200000000000"
        assert params["to"] == "20210630000000"
        assert params["filter"] == "statuscode:3.."
        assert params["collapse"] == "timestamp:6"
        assert params["limit"] == "50"
        assert params["fl"] == "timestamp,original,mimetype,statuscode,digest,length"
        assert params["output"] == "json"

    @pytest.mark.asyncio
    async def test_defaults_send_no_match_type_or_collapse(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            await cdx.get_snapshots(SnapshotsQuery(url="example.com", status_filter="all"))

        params = route.calls.last.request.url.params
        assert "matchType" not in params
        assert "collapse" not in params
        assert "filter" not in params

    @pytest.mark.asyncio
    async def test_rows_mapped_to_snapshots(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        rows = [
            _snapshot_row("20200101000000"),
            ["20210101000000", "http://example.com/", "", "-", "BBBB", "-"],
        ]

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=_body(SNAPSHOT_HEADER, rows))
            )
            result = await cdx.get_snapshots(SnapshotsQuery(url="http://example.com/"))

        assert result["total_snapshots"] == 2
        assert result["date_range"] == {"first": "2020-01-01", "last": "2021-01-01"}
        first, second = result["snapshots"]
        assert first == {
            "timestamp": "20200101000000",
            "formatted_date": "2020-01-01",
            "original_url": "http://example.com/",
            "mime_type": "text/html",
            "status_code": 200,
            "digest": "AAAA",
            "length": 1234,
            "wayback_url": "https://web.archive.org/web/20200101000000/http://example.com/",
            "raw_url": "https://web.archive.org/web/20200101000000id_/http://example.com/",
        }
        assert second["mime_type"] == "text/html"
        assert second["status_code"] == 200
        assert second["length"] == 0

    @pytest.mark.asyncio
    async def test_empty_listing(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text="[]"))
            result = await cdx.get_snapshots(SnapshotsQuery(url="example.com"))

        assert result["total_snapshots"] == 0
        assert result["snapshots"] == []
        assert result["date_range"] == {"first": "", "last": ""}

    @pytest.mark.asyncio
    async def test_listing_is_cached(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(
                    200, text=_body(SNAPSHOT_HEADER, [_snapshot_row("20200101000000")])
                )
            )
            await cdx.get_snapshots(SnapshotsQuery(url="example.com"))
            await cdx.get_snapshots(SnapshotsQuery(url="example.com"))

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_garbage_body_raises_parse_error(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text="oops"))
            with pytest.raises(ParseError):
                await cdx.get_snapshots(SnapshotsQuery(url="example.com"))


# ---------------------------------------------------------------------------
# get_snapshot_count / find_closest_snapshot
# ---------------------------------------------------------------------------


class TestSnapshotCount:
    @pytest.mark.asyncio
    async def test_counts_data_rows(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        body = json.dumps([["timestamp"], ["20200101000000"], ["20210101000000"]])

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=body))
            count = await cdx.get_snapshot_count("example.com")

        assert count == 2
        params = route.calls.last.request.url.params
        assert params["fl"] == "timestamp"
        assert params["filter"] == "statuscode:200"

    @pytest.mark.asyncio
    async def test_unparseable_counts_as_zero(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text="<html>"))
            assert await cdx.get_snapshot_count("example.com") == 0


class TestFindClosestSnapshot:
    @pytest.mark.asyncio
    async def test_picks_nearest_from_narrow_query(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        rows = [_snapshot_row("20200601000000"), _snapshot_row("20200301000000")]

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=_body(SNAPSHOT_HEADER, rows))
            )
            closest = await cdx.find_closest_snapshot("http://example.com/", "2020-02-15")

        assert closest is not None
        assert closest["timestamp"] == "20200301000000"
        params = route.calls.last.request.url.params
        assert params["from"] == "20200215000000"
        assert params["limit"] == "10"

    @pytest.mark.asyncio
    async def test_falls_back_to_year_listing(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        broad = [_snapshot_row("20200101000000"), _snapshot_row("20200201000000")]

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(
                side_effect=[
                    httpx.Response(200, text=""),
                    httpx.Response(200, text=_body(SNAPSHOT_HEADER, broad)),
                ]
            )
            closest = await cdx.find_closest_snapshot("http://example.com/", "20201231000000")

        assert closest is not None
        assert closest["timestamp"] == "20200201000000"
        params = route.calls.last.request.url.params
        assert params["from"] == "20200000000000"
        assert params["to"] == "20210000000000"
        assert params["collapse"] == "timestamp:6"

    @pytest.mark.asyncio
    async def test_none_when_nothing_found(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            assert await cdx.find_closest_snapshot("http://example.com/", "2020") is None


# ---------------------------------------------------------------------------
# get_site_urls
# ---------------------------------------------------------------------------


class TestGetSiteUrls:
    @pytest.mark.asyncio
    async def test_collapse_mode_query(self, wayback_client) -> None:
        """Without capture counts the CDX API collapses on urlkey."""
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            await cdx.get_site_urls(
                SiteUrlsQuery(url="https://example.com", limit=20, mime_type_filter="text/html")
            )

        params = route.calls.last.request.url.params
        assert params["url"] == "example.com"
        assert params["matchType"] == "domain"
        assert params["showResumeKey"] == "true"
        assert params["collapse"] == "urlkey"
        assert params["limit"] == "20"
        assert params.get_list("filter") == ["statuscode:200", "mimetype:text/html"]

    @pytest.mark.asyncio
    async def test_capture_count_mode_aggregates(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        rows = [
            ["http://example.com/", "20200101000000", "200", "text/html"],
            ["http://example.com/about", "20190101000000", "200", "text/html"],
            ["http://example.com/", "20180101000000", "200", "text/html"],
            ["http://example.com/", "20220101000000", "200", "text/html"],
        ]

        with respx.mock:
            route = respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=_body(SITE_HEADER, rows))
            )
            result = await cdx.get_site_urls(
                SiteUrlsQuery(url="example.com", limit=10, include_capture_counts=True)
            )

        params = route.calls.last.request.url.params
        assert params["limit"] == "100"
        assert "collapse" not in params

        assert result["total_urls"] == 2
        assert result["total_captures"] == 4
        home = result["urls"][0]
        assert home["url"] == "http://example.com/"
        assert home["first_capture"] == "20180101000000"
        assert home["last_capture"] == "20220101000000"
        assert home["capture_count"] == 3
        assert result["truncated"] is False
        assert "resume_key" not in result

    @pytest.mark.asyncio
    async def test_resume_key_marks_truncation(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        payload = [
            SITE_HEADER,
            ["http://example.com/", "20200101000000", "200", "text/html"],
            [],
            ["com,example)/next 20200101000000"],
        ]

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=json.dumps(payload))
            )
            result = await cdx.get_site_urls(SiteUrlsQuery(url="example.com"))

        assert result["truncated"] is True
        assert result["resume_key"] == "com,example)/next 20200101000000"
        assert result["total_urls"] == 1

    @pytest.mark.asyncio
    async def test_subdomains_histograms_and_limit(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        rows = [
            ["http://example.com/blog/a", "20200101000000", "200", "text/html"],
            ["http://example.com/blog/b", "20200101000000", "200", "text/html"],
            ["http://shop.example.com/cart", "20200101000000", "200", "text/html"],
            ["http://www.example.com/logo.png", "20200101000000", "200", "image/png"],
        ]

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=_body(SITE_HEADER, rows))
            )
            result = await cdx.get_site_urls(SiteUrlsQuery(url="example.com", limit=2))

        assert result["subdomains"] == ["shop"]
        assert result["total_urls"] == 4
        assert len(result["urls"]) == 2
        assert result["truncated"] is True
        assert result["path_structure"] == {"/blog": 2, "/cart": 1, "/logo.png": 1}
        assert result["mime_type_summary"] == {"text/html": 3, "image/png": 1}
        assert result["date_range"] == {"from": "", "to": "", "specified": False}

    @pytest.mark.asyncio
    async def test_exclude_subdomains(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)
        rows = [
            ["http://example.com/", "20200101000000", "200", "text/html"],
            ["http://www.example.com/x", "20200101000000", "200", "text/html"],
            ["http://shop.example.com/", "20200101000000", "200", "text/html"],
        ]

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=_body(SITE_HEADER, rows))
            )
            result = await cdx.get_site_urls(
                SiteUrlsQuery(url="example.com", include_subdomains=False)
            )

        assert [item["url"] for item in result["urls"]] == [
            "http://example.com/",
            "http://www.example.com/x",
        ]
        assert result["subdomains"] == ["shop"]

    @pytest.mark.asyncio
    async def test_date_range_reported(self, wayback_client) -> None:
        cdx = CdxIndex(wayback_client)

        with respx.mock:
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            result = await cdx.get_site_urls(
                SiteUrlsQuery.model_validate({"url": "example.com", "from": "2019-01-01", "to": "2020-12-31"})
            )

        assert result["date_range"] == {"from": "2019-01-01", "to": "2020-12-31", "specified": True}
