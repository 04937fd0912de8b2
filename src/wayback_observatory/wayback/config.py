"""Configuration for the Wayback Machine integration.

Defines upstream endpoints, CDX field lists, query limits, and collapse /
status-filter vocabularies used by
:class:`~wayback_observatory.wayback.client.WaybackClient` and the API
modules built on top of it.

All three endpoint families are free and unauthenticated; archive.org rate
limits by IP, which is why every request goes through the in-process
:class:`~wayback_observatory.core.rate_limiter.RateLimiter`.

Reference: https://github.com/internetarchive/wayback/tree/master/wayback-cdx-server
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# API constants
# ---------------------------------------------------------------------------

WB_AVAILABILITY_URL: str = "https://archive.org/wayback/available"
"""URL for the Wayback Machine Availability API.

Answers "is this URL archived, and what is the closest capture" for a
``url`` and optional ``timestamp``.
"""

WB_CDX_BASE_URL: str = "https://web.archive.org/cdx/search/cdx"
"""Base URL for the Wayback Machine CDX API.

Query parameters are appended as standard query string parameters.
"""

WB_SNAPSHOT_BASE_URL: str = "https://web.archive.org/web"
"""Prefix for playback addresses.

``{base}/{timestamp}/{url}`` renders the capture with the Wayback toolbar;
``{base}/{timestamp}id_/{url}`` returns the raw archived bytes.
"""

WB_CALENDAR_URL_TEMPLATE: str = "https://web.archive.org/web/*/{url}"
"""Calendar view of every capture of *url*, reported as ``archive_org_url``."""

WB_DEFAULT_OUTPUT: str = "json"
"""CDX output format.

``json`` returns a 2D array: first row is field names, subsequent rows are
capture records, and an optional trailing ``["", "<key>"]`` row carries the
resume key when ``showResumeKey=true`` is set.
"""

WB_SNAPSHOT_FIELDS: str = "timestamp,original,mimetype,statuscode,digest,length"
"""Field list for snapshot listings.  Rows are mapped positionally."""

WB_SITE_URL_FIELDS: str = "original,timestamp,statuscode,mimetype"
"""Field list for site-wide URL discovery.  Rows are mapped by header name."""

WB_FALLBACK_FIELDS: str = "timestamp,original,statuscode"
"""Field list for the availability CDX fallback point query."""

# ---------------------------------------------------------------------------
# Endpoint labels (rate-limit categories, see core.rate_limiter)
# ---------------------------------------------------------------------------

WB_ENDPOINT_AVAILABILITY: str = "available"
WB_ENDPOINT_CDX: str = "cdx"
WB_ENDPOINT_CONTENT: str = "web/content"

# ---------------------------------------------------------------------------
# Query limits
# ---------------------------------------------------------------------------

WB_MAX_LIMIT: int = 10_000
"""Upper bound on the ``limit`` sent with any listing query."""

WB_MAX_RAW_ROWS: int = 100_000
"""Upper bound on raw rows fetched when aggregating capture counts."""

WB_RAW_ROW_MULTIPLIER: int = 10
"""Raw rows requested per unique URL when capture counts are aggregated."""

WB_TIMELINE_LIMIT: int = 1000
"""Snapshot listing size used to derive a changes timeline."""

WB_PATH_HISTOGRAM_SIZE: int = 20
"""Number of top-level path segments reported by site-wide discovery."""

WB_DEFAULT_STATUS_FILTER: str = "statuscode:200"
"""Status filter applied to point queries (fallback, counts)."""

WB_COLLAPSE_MAP: dict[str, str] = {
    "daily": "timestamp:8",
    "monthly": "timestamp:6",
    "yearly": "timestamp:4",
    "digest": "digest",
}
"""Collapse strategy name to CDX ``collapse`` value.  ``none`` sends nothing."""

WB_USER_AGENT_ACCEPT: str = "application/json, text/html, */*"
"""``Accept`` header sent with every upstream request."""


def status_filter_param(status_filter: str | None) -> str | None:
    """Translate a status-filter option to a CDX ``filter`` value.

    ``"200"`` maps to ``statuscode:200``; ``"3xx"``/``"4xx"``/``"5xx"`` map to
    the regex form ``statuscode:3..``; ``"all"`` (or ``None``) sends no filter.
    """
    if not status_filter or status_filter == "all":
        return None
    if status_filter == "200":
        return WB_DEFAULT_STATUS_FILTER
    return f"statuscode:{status_filter.replace('xx', '..')}"
