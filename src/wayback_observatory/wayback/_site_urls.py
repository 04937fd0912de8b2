"""Row parsing and aggregation helpers for site-wide URL discovery.

Internal module used by
:meth:`~wayback_observatory.wayback.cdx.CdxIndex.get_site_urls`.  Everything
here is pure: rows in, records and histograms out.

Provides:
- :func:`split_resume_key`: separate data rows from a trailing resume key.
- :func:`rows_to_entries`: map rows to dicts by header name.
- :func:`aggregate_site_urls`: group captures by original URL.
- :func:`sort_site_urls`: optional re-sort by first/last capture or count.
- :func:`base_domain` / :func:`url_host`: host normalization.
- :func:`extract_subdomains` / :func:`filter_subdomains`.
- :func:`path_structure` / :func:`mime_type_summary`: histograms.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any
from urllib.parse import urlparse

from wayback_observatory.wayback.config import WB_PATH_HISTOGRAM_SIZE

_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def split_resume_key(rows: list[Any]) -> tuple[list[Any], str | None]:
    """Strip the resume-key marker from the end of a CDX row list.

    With ``showResumeKey=true`` the CDX API may end its JSON array with a
    ``["", "<key>"]`` row (some deployments emit ``["<key>"]`` after an empty
    ``[]`` separator instead).  Both forms are recognised; empty separator
    rows are dropped.

    Args:
        rows: Data rows, header already removed.

    Returns:
        Tuple of (data rows, resume key or ``None``).
    """
    data = list(rows)
    resume_key: str | None = None

    if data and isinstance(data[-1], list):
        last = data[-1]
        if len(last) == 2 and last[0] == "":
            resume_key = str(last[1])
            data.pop()
        elif len(last) == 1:
            resume_key = str(last[0])
            data.pop()

    while data and data[-1] == []:
        data.pop()

    return data, resume_key


def rows_to_entries(header: list[str], rows: list[Any]) -> list[dict[str, str]]:
    """Map each row to a dict keyed by *header*; malformed rows are skipped."""
    entries: list[dict[str, str]] = []
    for row in rows:
        if isinstance(row, list) and len(row) == len(header):
            entries.append(dict(zip(header, row)))
    return entries


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_site_urls(entries: list[dict[str, str]]) -> list[dict[str, Any]]:
    """Group capture entries by original URL.

    Each URL reports its earliest and latest capture timestamps and the
    number of captures seen; status and MIME type come from the first entry
    for that URL.  The result is ordered by descending capture count, ties
    keeping first-seen order.
    """
    grouped: dict[str, dict[str, Any]] = {}
    for entry in entries:
        url = entry.get("original", "")
        if not url:
            continue
        timestamp = entry.get("timestamp", "")
        record = grouped.get(url)
        if record is None:
            grouped[url] = {
                "url": url,
                "timestamps": [timestamp],
                "status_code": entry.get("statuscode", ""),
                "mime_type": entry.get("mimetype", ""),
            }
        else:
            record["timestamps"].append(timestamp)

    site_urls: list[dict[str, Any]] = []
    for record in grouped.values():
        timestamps = sorted(record.pop("timestamps"))
        site_urls.append(
            {
                "url": record["url"],
                "first_capture": timestamps[0],
                "last_capture": timestamps[-1],
                "capture_count": len(timestamps),
                "status_code": record["status_code"],
                "mime_type": record["mime_type"],
            }
        )

    site_urls.sort(key=lambda item: item["capture_count"], reverse=True)
    return site_urls


def sort_site_urls(site_urls: list[dict[str, Any]], sort_by: str | None) -> list[dict[str, Any]]:
    """Return *site_urls* re-sorted by ``oldest``, ``newest`` or ``captures``."""
    if sort_by == "oldest":
        return sorted(site_urls, key=lambda item: item["first_capture"])
    if sort_by == "newest":
        return sorted(site_urls, key=lambda item: item["last_capture"], reverse=True)
    if sort_by == "captures":
        return sorted(site_urls, key=lambda item: item["capture_count"], reverse=True)
    return site_urls


# ---------------------------------------------------------------------------
# Hosts and subdomains
# ---------------------------------------------------------------------------


def strip_protocol(url: str) -> str:
    """Remove a leading ``http://`` or ``https://``."""
    return _PROTOCOL_RE.sub("", url)


def url_host(url: str) -> str:
    """Return the lower-cased host of *url*, which may lack a scheme."""
    parsed = urlparse(url if "://" in url else f"http://{url}")
    return parsed.hostname or ""


def base_domain(url: str) -> str:
    """Return the queried host with any leading ``www.`` removed."""
    host = url_host(strip_protocol(url).lstrip("*."))
    return host[4:] if host.startswith("www.") else host


def extract_subdomains(site_urls: list[dict[str, Any]], base: str) -> list[str]:
    """Collect the child label directly left of *base* for every subdomain host.

    Only the label adjacent to the base domain is reported, so
    ``a.b.example.com`` under ``example.com`` contributes ``b``.  ``www`` is
    not reported.

    Returns:
        Sorted unique labels.
    """
    suffix = f".{base}"
    labels: set[str] = set()
    for item in site_urls:
        host = url_host(item["url"])
        if host == base or not host.endswith(suffix):
            continue
        label = host[: -len(suffix)].split(".")[-1]
        if label and label != "www":
            labels.add(label)
    return sorted(labels)


def filter_subdomains(site_urls: list[dict[str, Any]], base: str) -> list[dict[str, Any]]:
    """Keep only URLs on *base* itself or its ``www.`` variant."""
    allowed = {base, f"www.{base}"}
    return [item for item in site_urls if url_host(item["url"]) in allowed]


# ---------------------------------------------------------------------------
# Histograms
# ---------------------------------------------------------------------------


def _top_level_path(url: str) -> str:
    parsed = urlparse(url if "://" in url else f"http://{url}")
    segments = [segment for segment in parsed.path.split("/") if segment]
    return f"/{segments[0]}" if segments else "/"


def path_structure(site_urls: list[dict[str, Any]]) -> dict[str, int]:
    """Histogram of top-level path segments, top 20 by frequency."""
    counts = Counter(_top_level_path(item["url"]) for item in site_urls)
    return dict(counts.most_common(WB_PATH_HISTOGRAM_SIZE))


def mime_type_summary(site_urls: list[dict[str, Any]]) -> dict[str, int]:
    """Histogram of MIME types, most frequent first."""
    counts = Counter(item["mime_type"] or "unknown" for item in site_urls)
    return dict(counts.most_common())
