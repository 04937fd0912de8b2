"""Tests for AvailabilityChecker.

Covers:
- www_variant() adds/removes www. and normalizes an empty path to /
- check_availability() returns the Availability API's closest capture
- CDX fallback when the Availability API reports nothing
- CDX fallback failures degrade to "not archived"
- www variant merge: hit on the variant is relabelled under the requested URL
- results are cached per (url, timestamp)
- check_bulk_availability() never aborts on a failing URL

Upstream calls are intercepted with respx; no network access.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from wayback_observatory.core.schemas.queries import AvailabilityQuery
from wayback_observatory.wayback.availability import (
    AvailabilityChecker,
    archive_org_url,
    www_variant,
)
from wayback_observatory.wayback.config import WB_AVAILABILITY_URL, WB_CDX_BASE_URL

_EMPTY_AVAILABILITY = {"url": "", "archived_snapshots": {}}


def _available(url: str, timestamp: str = "20200115123045") -> dict:
    return {
        "url": url,
        "archived_snapshots": {
            "closest": {
                "available": True,
                "url": f"http://web.archive.org/web/{timestamp}/{url}",
                "timestamp": timestamp,
                "status": "200",
            }
        },
    }


def _availability_router(archived: dict[str, dict]):
    """side_effect answering the Availability API from a url -> payload map."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = request.url.params["url"]
        return httpx.Response(200, json=archived.get(url, _EMPTY_AVAILABILITY))

    return handler


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestWwwVariant:
    def test_adds_www_and_root_path(self) -> None:
        assert www_variant("http://example.com") == "http://www.example.com/"

    def test_removes_www(self) -> None:
        assert www_variant("https://www.example.com/about") == "https://example.com/about"

    def test_keeps_port_and_query(self) -> None:
        assert www_variant("http://example.com:8080/a?b=1") == "http://www.example.com:8080/a?b=1"

    def test_no_host_returns_none(self) -> None:
        assert www_variant("not a url") is None

    def test_archive_org_url(self) -> None:
        assert archive_org_url("http://example.com") == "https://web.archive.org/web/*/http://example.com"


# ---------------------------------------------------------------------------
# check_availability
# ---------------------------------------------------------------------------


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_archived_url(self, wayback_client) -> None:
        """The Availability API's closest capture is reported directly."""
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                side_effect=_availability_router({"http://example.com": _available("http://example.com")})
            )
            result = await checker.check_availability(AvailabilityQuery(url="http://example.com"))

        assert result["is_archived"] is True
        assert result["url"] == "http://example.com"
        assert result["closest_snapshot"]["timestamp"] == "20200115123045"
        assert result["closest_snapshot"]["formatted_date"] == "2020-01-15"
        assert result["archive_org_url"] == "https://web.archive.org/web/*/http://example.com"
        assert "checked_variant" not in result

    @pytest.mark.asyncio
    async def test_timestamp_is_normalized(self, wayback_client) -> None:
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            route = respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_available("http://example.com"))
            )
            await checker.check_availability(
                AvailabilityQuery(url="http://example.com", timestamp="2020-01-15")
            )

        assert route.calls.last.request.url.params["timestamp"] == "20200115000000"

    @pytest.mark.asyncio
    async def test_cdx_fallback_finds_capture(self, wayback_client) -> None:
        """When the Availability API has nothing, a CDX point query is tried."""
        checker = AvailabilityChecker(wayback_client)
        cdx_rows = [["timestamp", "original", "statuscode"], ["20190101000000", "http://example.com/", "200"]]

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_EMPTY_AVAILABILITY)
            )
            cdx = respx.get(WB_CDX_BASE_URL).mock(
                return_value=httpx.Response(200, text=json.dumps(cdx_rows))
            )
            result = await checker.check_availability(
                AvailabilityQuery(url="http://example.com/", check_www_variant=False)
            )

        assert result["is_archived"] is True
        assert result["closest_snapshot"] == {
            "url": "https://web.archive.org/web/20190101000000/http://example.com/",
            "timestamp": "20190101000000",
            "formatted_date": "2019-01-01",
            "status": "200",
        }
        params = cdx.calls.last.request.url.params
        assert params["url"] == "example.com"
        assert params["limit"] == "1"
        assert params["filter"] == "statuscode:200"

    @pytest.mark.asyncio
    async def test_cdx_fallback_uses_closest_sort_with_timestamp(self, wayback_client) -> None:
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_EMPTY_AVAILABILITY)
            )
            cdx = respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            await checker.check_availability(
                AvailabilityQuery(url="http://example.com", timestamp="2015", check_www_variant=False)
            )

        params = cdx.calls.last.request.url.params
        assert params["closest"] == "20150000000000"
        assert params["sort"] == "closest"

    @pytest.mark.asyncio
    async def test_cdx_fallback_failure_means_not_archived(self, wayback_client) -> None:
        """A failing fallback is logged and reported as not archived."""
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_EMPTY_AVAILABILITY)
            )
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(400))
            result = await checker.check_availability(
                AvailabilityQuery(url="http://example.com", check_www_variant=False)
            )

        assert result["is_archived"] is False
        assert "closest_snapshot" not in result

    @pytest.mark.asyncio
    async def test_www_variant_hit_is_merged(self, wayback_client) -> None:
        """A capture found only for the www variant is reported under the requested URL."""
        checker = AvailabilityChecker(wayback_client)
        variant = "http://www.example.com/"

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                side_effect=_availability_router({variant: _available(variant, "20180505000000")})
            )
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            result = await checker.check_availability(AvailabilityQuery(url="http://example.com"))

        assert result["is_archived"] is True
        assert result["url"] == "http://example.com"
        assert result["checked_variant"] == "http://www.example.com/"
        assert result["archive_org_url"] == "https://web.archive.org/web/*/http://example.com"
        assert result["closest_snapshot"]["timestamp"] == "20180505000000"

    @pytest.mark.asyncio
    async def test_variant_check_can_be_disabled(self, wayback_client) -> None:
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            route = respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_EMPTY_AVAILABILITY)
            )
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            result = await checker.check_availability(
                AvailabilityQuery(url="http://example.com", check_www_variant=False)
            )

        assert result["is_archived"] is False
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_result_is_cached(self, wayback_client) -> None:
        """A second lookup of the same (url, timestamp) makes no request."""
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            route = respx.get(WB_AVAILABILITY_URL).mock(
                return_value=httpx.Response(200, json=_available("http://example.com"))
            )
            query = AvailabilityQuery(url="http://example.com")
            first = await checker.check_availability(query)
            second = await checker.check_availability(query)

        assert first == second
        assert route.call_count == 1


# ---------------------------------------------------------------------------
# check_bulk_availability
# ---------------------------------------------------------------------------


class TestBulkAvailability:
    @pytest.mark.asyncio
    async def test_failing_url_reported_not_archived(self, wayback_client) -> None:
        """One bad URL does not abort the batch."""
        checker = AvailabilityChecker(wayback_client)

        with respx.mock:
            respx.get(WB_AVAILABILITY_URL).mock(
                side_effect=_availability_router({"http://a.example": _available("http://a.example")})
            )
            respx.get(WB_CDX_BASE_URL).mock(return_value=httpx.Response(200, text=""))
            results = await checker.check_bulk_availability(
                ["http://a.example", "not-a-url"], check_www_variant=False
            )

        assert list(results) == ["http://a.example", "not-a-url"]
        assert results["http://a.example"]["is_archived"] is True
        assert results["not-a-url"] == {
            "url": "not-a-url",
            "is_archived": False,
            "archive_org_url": "https://web.archive.org/web/*/not-a-url",
        }
