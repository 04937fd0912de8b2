"""CDX index queries: snapshot listings, counts, closest match, site URLs.

:class:`CdxIndex` builds CDX queries from the parameter schemas in
:mod:`~wayback_observatory.core.schemas.queries`, runs them through
:meth:`WaybackClient.with_retry`, and turns the tabular JSON responses into
records.  Listings and site-URL discovery are cached by their full parameter
set.

CDX JSON responses are 2D arrays: the first row holds field names, the
remaining rows are captures.  Snapshot listings map rows positionally
(``timestamp, original, mimetype, statuscode, digest, length``); site-URL
discovery maps them by header name.
"""

from __future__ import annotations

import logging
from typing import Any

from wayback_observatory.core.cache import CACHE_TTL
from wayback_observatory.core.schemas.queries import SiteUrlsQuery, SnapshotsQuery
from wayback_observatory.core.timestamps import format_timestamp, normalize_timestamp
from wayback_observatory.wayback import _site_urls
from wayback_observatory.wayback.client import WaybackClient
from wayback_observatory.wayback.config import (
    WB_COLLAPSE_MAP,
    WB_DEFAULT_STATUS_FILTER,
    WB_ENDPOINT_CDX,
    WB_MAX_LIMIT,
    WB_MAX_RAW_ROWS,
    WB_RAW_ROW_MULTIPLIER,
    WB_SITE_URL_FIELDS,
    WB_SNAPSHOT_FIELDS,
    status_filter_param,
)

logger = logging.getLogger(__name__)


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value) or default
    except (TypeError, ValueError):
        return default


class CdxIndex:
    """Query the Wayback Machine CDX index.

    Args:
        client: Shared :class:`WaybackClient`.
    """

    def __init__(self, client: WaybackClient) -> None:
        self._client = client

    @property
    def client(self) -> WaybackClient:
        return self._client

    # ------------------------------------------------------------------
    # Snapshot listings
    # ------------------------------------------------------------------

    async def get_snapshots(self, query: SnapshotsQuery) -> dict[str, Any]:
        """List captures of ``query.url``.

        Returns:
            ``{url, total_snapshots, date_range {first, last}, snapshots}``
            where each snapshot is ``{timestamp, formatted_date,
            original_url, mime_type, status_code, digest, length,
            wayback_url, raw_url}``.

        Raises:
            ParseError: If the CDX body is not a JSON array.
        """
        cache = self._client.cache
        cache_key = cache.generate_key("cdx", query.model_dump())
        cached = cache.get(cache_key)
        if cached:
            return cached

        params: dict[str, Any] = {"url": query.url, "fl": WB_SNAPSHOT_FIELDS}
        if query.match_type != "exact":
            params["matchType"] = query.match_type
        if query.from_:
            params["from"] = normalize_timestamp(query.from_)
        if query.to:
            params["to"] = normalize_timestamp(query.to)
        status_filter = status_filter_param(query.status_filter)
        if status_filter:
            params["filter"] = status_filter
        if query.collapse != "none":
            params["collapse"] = WB_COLLAPSE_MAP[query.collapse]
        params["limit"] = min(query.limit, WB_MAX_LIMIT)

        rows = await self._client.with_retry(
            lambda: self._client.fetch_cdx(params),
            WB_ENDPOINT_CDX,
        )

        data_rows, _ = _site_urls.split_resume_key(rows[1:])
        snapshots = [self._row_to_snapshot(row) for row in data_rows if len(row) >= 2]

        result: dict[str, Any] = {
            "url": query.url,
            "total_snapshots": len(snapshots),
            "date_range": {
                "first": snapshots[0]["formatted_date"] if snapshots else "",
                "last": snapshots[-1]["formatted_date"] if snapshots else "",
            },
            "snapshots": snapshots,
        }

        cache.set(cache_key, result, CACHE_TTL["snapshots"])
        return result

    def _row_to_snapshot(self, row: list[Any]) -> dict[str, Any]:
        timestamp, original = str(row[0]), str(row[1])
        return {
            "timestamp": timestamp,
            "formatted_date": format_timestamp(timestamp),
            "original_url": original,
            "mime_type": (row[2] if len(row) > 2 else "") or "text/html",
            "status_code": _to_int(row[3] if len(row) > 3 else None, 200),
            "digest": (row[4] if len(row) > 4 else "") or "",
            "length": _to_int(row[5] if len(row) > 5 else None, 0),
            "wayback_url": self._client.get_snapshot_url(timestamp, original),
            "raw_url": self._client.get_raw_snapshot_url(timestamp, original),
        }

    async def get_snapshot_count(self, url: str) -> int:
        """Return the number of status-200 captures of *url*.

        An empty or unparseable body counts as zero.  Not cached.
        """
        params = {"url": url, "fl": "timestamp", "filter": WB_DEFAULT_STATUS_FILTER}
        rows = await self._client.with_retry(
            lambda: self._client.fetch_cdx(params, lenient=True),
            WB_ENDPOINT_CDX,
        )
        return max(0, len(rows) - 1)

    async def find_closest_snapshot(self, url: str, target_timestamp: str) -> dict[str, Any] | None:
        """Return the capture of *url* nearest to *target_timestamp*, or ``None``.

        Searches captures from the target day onwards first; if there are
        none, widens to a monthly-collapsed listing of the target year.
        Distance is the absolute difference of the zero-padded 14-digit
        timestamps read as integers.
        """
        target = normalize_timestamp(target_timestamp)

        narrow = await self.get_snapshots(
            SnapshotsQuery(
                url=url,
                from_=target[:8],
                match_type="exact",
                status_filter="200",
                collapse="none",
                limit=10,
            )
        )
        candidates = narrow["snapshots"]

        if not candidates:
            year = target[:4]
            broad = await self.get_snapshots(
                SnapshotsQuery(
                    url=url,
                    from_=year,
                    to=str(int(year) + 1) if year.isdigit() else None,
                    match_type="exact",
                    status_filter="200",
                    collapse="monthly",
                    limit=50,
                )
            )
            candidates = broad["snapshots"]

        if not candidates:
            return None
        return _closest_by_timestamp(candidates, target)

    # ------------------------------------------------------------------
    # Site-wide URL discovery
    # ------------------------------------------------------------------

    async def get_site_urls(self, query: SiteUrlsQuery) -> dict[str, Any]:
        """Discover the unique archived URLs of a domain, host or prefix.

        Without capture counts the CDX API collapses on ``urlkey`` so each
        row is already a distinct URL.  With capture counts up to
        ``limit * 10`` raw captures (at most 100000) are fetched and grouped
        client-side.  The limit is applied last, after filtering and sorting.

        Returns:
            ``{url, match_type, date_range, total_urls, total_captures, urls,
            subdomains, path_structure, mime_type_summary, truncated,
            resume_key?}``.
        """
        cache = self._client.cache
        cache_key = cache.generate_key("site_urls", query.model_dump())
        cached = cache.get(cache_key)
        if cached:
            return cached

        target = _site_urls.strip_protocol(query.url)
        params: list[tuple[str, Any]] = [
            ("url", target),
            ("fl", WB_SITE_URL_FIELDS),
            ("matchType", query.match_type),
            ("showResumeKey", "true"),
        ]
        if query.from_:
            params.append(("from", normalize_timestamp(query.from_)))
        if query.to:
            params.append(("to", normalize_timestamp(query.to)))
        status_filter = status_filter_param(query.status_filter)
        if status_filter:
            params.append(("filter", status_filter))
        if query.mime_type_filter:
            params.append(("filter", f"mimetype:{query.mime_type_filter}"))

        if query.include_capture_counts:
            params.append(("limit", min(query.limit * WB_RAW_ROW_MULTIPLIER, WB_MAX_RAW_ROWS)))
        else:
            params.append(("collapse", "urlkey"))
            params.append(("limit", query.limit))

        rows = await self._client.with_retry(
            lambda: self._client.fetch_cdx(params),
            WB_ENDPOINT_CDX,
        )

        header: list[str] = rows[0] if rows and isinstance(rows[0], list) else []
        data_rows, resume_key = _site_urls.split_resume_key(rows[1:])
        entries = _site_urls.rows_to_entries(header, data_rows)

        site_urls = _site_urls.aggregate_site_urls(entries)
        site_urls = _site_urls.sort_site_urls(site_urls, query.sort_by)

        base = _site_urls.base_domain(target)
        subdomains: list[str] = []
        if query.match_type == "domain":
            subdomains = _site_urls.extract_subdomains(site_urls, base)
            if not query.include_subdomains:
                site_urls = _site_urls.filter_subdomains(site_urls, base)

        total_urls = len(site_urls)
        total_captures = sum(item["capture_count"] for item in site_urls)
        limited = site_urls[: query.limit]

        result: dict[str, Any] = {
            "url": query.url,
            "match_type": query.match_type,
            "date_range": {
                "from": format_timestamp(normalize_timestamp(query.from_)) if query.from_ else "",
                "to": format_timestamp(normalize_timestamp(query.to)) if query.to else "",
                "specified": bool(query.from_ or query.to),
            },
            "total_urls": total_urls,
            "total_captures": total_captures,
            "urls": limited,
            "subdomains": subdomains,
            "path_structure": _site_urls.path_structure(site_urls),
            "mime_type_summary": _site_urls.mime_type_summary(site_urls),
            "truncated": resume_key is not None or total_urls > len(limited),
        }
        if resume_key is not None:
            result["resume_key"] = resume_key

        logger.info(
            "wayback: site urls for %s: %d unique urls from %d rows",
            target,
            total_urls,
            len(entries),
        )

        cache.set(cache_key, result, CACHE_TTL["site_urls"])
        return result


def _closest_by_timestamp(snapshots: list[dict[str, Any]], target: str) -> dict[str, Any]:
    """Pick the snapshot minimizing ``|int(timestamp) - int(target)|``; first wins ties."""
    target_num = int(target.ljust(14, "0")) if target.isdigit() else 0
    closest = snapshots[0]
    closest_diff = abs(_to_int(closest["timestamp"], 0) - target_num)
    for snapshot in snapshots[1:]:
        diff = abs(_to_int(snapshot["timestamp"], 0) - target_num)
        if diff < closest_diff:
            closest, closest_diff = snapshot, diff
    return closest
