"""Pydantic parameter schemas for every Wayback operation.

Each model is both the typed parameter contract of an API method
(``CdxIndex.get_snapshots(SnapshotsQuery(...))``) and the published input
schema of the matching tool.  Fields are ``snake_case``; each also accepts
the camelCase alias used by tool clients (``checkWwwVariant``,
``matchType``, ...).  ``from`` is exposed as ``from_`` in Python since it is
a keyword.
"""

from __future__ import annotations

import re
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

MATCH_TYPES = Literal["exact", "prefix", "host", "domain"]
STATUS_FILTERS = Literal["200", "2xx", "3xx", "4xx", "5xx", "all"]
COLLAPSE_STRATEGIES = Literal["none", "daily", "monthly", "yearly", "digest"]
GRANULARITIES = Literal["daily", "weekly", "monthly"]
COMPARE_ELEMENTS = Literal["title", "description", "headings", "content", "links", "structure", "all"]
ANALYSIS_DEPTHS = Literal["quick", "standard", "deep"]
SITE_URL_SORTS = Literal["oldest", "newest", "captures"]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class _Query(BaseModel):
    """Common configuration: accept field names and camelCase aliases alike."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class AvailabilityQuery(_Query):
    """Parameters for a single availability lookup.

    Attributes:
        url: Absolute ``http(s)`` URL to look up.
        timestamp: Optional target date; the closest capture to it is returned.
        check_www_variant: When the URL is not archived, retry with the
            ``www.`` prefix toggled.
    """

    url: str = Field(..., min_length=1, description="The URL to check for availability")
    timestamp: Optional[str] = Field(
        default=None,
        description="Target timestamp (YYYYMMDDhhmmss or YYYY-MM-DD) to find the closest snapshot",
    )
    check_www_variant: bool = Field(
        default=True,
        alias="checkWwwVariant",
        description="If the URL is not found, also check the www/non-www variant",
    )

    @field_validator("url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value


class BulkCheckQuery(_Query):
    """Parameters for checking up to 50 URLs in one call."""

    urls: list[str] = Field(..., min_length=1, max_length=50, description="URLs to check (max 50)")
    timestamp: Optional[str] = Field(default=None, description="Target timestamp for every URL")
    include_snapshot_count: bool = Field(
        default=False,
        alias="includeSnapshotCount",
        description="Include the total snapshot count per URL (slower)",
    )
    check_www_variant: bool = Field(
        default=True,
        alias="checkWwwVariant",
        description="If a URL is not found, also check its www/non-www variant",
    )


# ---------------------------------------------------------------------------
# CDX listings
# ---------------------------------------------------------------------------


class SnapshotsQuery(_Query):
    """Parameters for a CDX snapshot listing."""

    url: str = Field(..., min_length=1, description="The URL to list snapshots for")
    match_type: MATCH_TYPES = Field(default="exact", alias="matchType")
    from_: Optional[str] = Field(default=None, alias="from", description="Start date")
    to: Optional[str] = Field(default=None, description="End date")
    status_filter: STATUS_FILTERS = Field(default="200", alias="statusFilter")
    collapse: COLLAPSE_STRATEGIES = Field(
        default="none",
        description="Deduplicate by day/month/year or by content digest",
    )
    limit: int = Field(default=100, ge=1, le=10_000, description="Maximum snapshots to return")


class SiteUrlsQuery(_Query):
    """Parameters for site-wide URL discovery."""

    url: str = Field(
        ...,
        min_length=1,
        description='Domain or URL prefix (e.g. "example.com" or "example.com/blog/")',
    )
    match_type: MATCH_TYPES = Field(default="domain", alias="matchType")
    from_: Optional[str] = Field(default=None, alias="from", description="Start date filter")
    to: Optional[str] = Field(default=None, description="End date filter")
    status_filter: STATUS_FILTERS = Field(default="200", alias="statusFilter")
    limit: int = Field(default=1000, ge=1, le=10_000, description="Maximum URLs to return")
    include_subdomains: bool = Field(default=True, alias="includeSubdomains")
    include_capture_counts: bool = Field(
        default=False,
        alias="includeCaptureCounts",
        description="Aggregate first/last capture and capture count per URL (slower)",
    )
    mime_type_filter: Optional[str] = Field(
        default=None,
        alias="mimeTypeFilter",
        description='Only captures of this MIME type (e.g. "text/html")',
    )
    sort_by: Optional[SITE_URL_SORTS] = Field(
        default=None,
        alias="sortBy",
        description="Re-sort URLs by first capture (oldest), last capture (newest) or capture count",
    )


class ChangesTimelineQuery(_Query):
    """Parameters for a digest-based changes timeline."""

    url: str = Field(..., min_length=1, description="The URL to analyze")
    from_: Optional[str] = Field(default=None, alias="from", description="Start date (YYYY-MM-DD)")
    to: Optional[str] = Field(default=None, description="End date (YYYY-MM-DD)")
    granularity: GRANULARITIES = Field(default="monthly")
    include_metadata_changes: bool = Field(
        default=False,
        alias="includeMetadataChanges",
        description="Accepted for compatibility; metadata is not fetched",
    )


# ---------------------------------------------------------------------------
# Snapshot content and comparison
# ---------------------------------------------------------------------------


class SnapshotContentQuery(_Query):
    """Parameters for fetching one archived page."""

    url: str = Field(..., min_length=1, description="The original URL")
    timestamp: str = Field(..., min_length=1, description="Snapshot timestamp (YYYYMMDDhhmmss)")
    extract_metadata: bool = Field(default=True, alias="extractMetadata")
    include_raw_html: bool = Field(default=False, alias="includeRawHtml")
    max_content_length: int = Field(default=50_000, ge=1, alias="maxContentLength")


class CompareSnapshotsQuery(_Query):
    """Parameters for comparing two captures of one URL."""

    url: str = Field(..., min_length=1)
    timestamp1: str = Field(..., min_length=1, description="Earlier snapshot timestamp")
    timestamp2: str = Field(..., min_length=1, description="Later snapshot timestamp")
    compare_elements: list[COMPARE_ELEMENTS] = Field(
        default_factory=lambda: ["all"],
        alias="compareElements",
    )
    show_diff: bool = Field(default=True, alias="showDiff")


class AnalyzeChangesQuery(_Query):
    """Parameters for an SEO-oriented before/after analysis."""

    url: str = Field(..., min_length=1)
    before_date: str = Field(..., alias="beforeDate", description="YYYY-MM-DD before the change")
    after_date: str = Field(..., alias="afterDate", description="YYYY-MM-DD after the change")
    analysis_depth: ANALYSIS_DEPTHS = Field(default="standard", alias="analysisDepth")

    @field_validator("before_date", "after_date")
    @classmethod
    def _require_iso_date(cls, value: str) -> str:
        if not _ISO_DATE_RE.match(value):
            raise ValueError("date must be formatted as YYYY-MM-DD")
        return value


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------


class ExtractLinksQuery(_Query):
    """Parameters for extracting the links of one archived page."""

    url: str = Field(..., min_length=1)
    timestamp: Optional[str] = Field(
        default=None,
        description="Snapshot timestamp; the earliest capture is used when omitted",
    )
    include_internal: bool = Field(default=False, alias="includeInternal")


class ResearchDomainQuery(_Query):
    """Parameters for a systematic crawl of a domain's oldest archived pages."""

    domain: str = Field(..., min_length=1, description='Domain to research (e.g. "example.com")')
    path_prefix: Optional[str] = Field(default=None, alias="pathPrefix")
    limit: int = Field(default=100, ge=1, description="URLs to discover (capped at 1000)")
    process_limit: int = Field(
        default=20,
        ge=1,
        alias="processLimit",
        description="Pages to fetch and analyze (capped at 50)",
    )
    from_year: int = Field(default=1996, ge=1996, alias="fromYear")
