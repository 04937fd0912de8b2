"""Link extraction and systematic domain research over archived pages.

Research walks a domain's archived HTML pages oldest-first, collecting titles,
outbound domains and keyword-based findings (press releases, hiring,
partnerships, acquisitions, launches).  Content fetches are spaced by a
courtesy pause on top of the rate limiter.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from wayback_observatory.core.exceptions import NotFoundError
from wayback_observatory.core.schemas.queries import (
    ExtractLinksQuery,
    ResearchDomainQuery,
    SiteUrlsQuery,
    SnapshotContentQuery,
    SnapshotsQuery,
)
from wayback_observatory.core.timestamps import format_timestamp
from wayback_observatory.wayback.cdx import CdxIndex
from wayback_observatory.wayback.config import WB_MAX_LIMIT
from wayback_observatory.wayback.snapshots import SnapshotFetcher

logger = logging.getLogger(__name__)

CONTENT_FETCH_DELAY: float = 0.5
CDX_QUERY_DELAY: float = 0.2

MAX_RESEARCH_LIMIT = 1000
MAX_PROCESS_LIMIT = 50

_SKIPPED_PREFIXES: tuple[str, ...] = ("#", "javascript:", "mailto:")

# Finding type -> lower-case phrases that trigger it.
FINDING_KEYWORDS: dict[str, tuple[str, ...]] = {
    "announcement": ("press release", "news release"),
    "jobs": ("careers", "job opening", "we're hiring", "employment"),
    "partnership": ("partnership", "strategic alliance"),
    "acquisition": ("acquisition", "acquired", "merger"),
    "product": ("announces", "introducing", "now available"),
}


def _bare_host(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def _is_external(link_domain: str, source_domain: str) -> bool:
    return bool(link_domain) and link_domain != source_domain and "archive.org" not in link_domain


def iter_anchor_urls(html: str, base_url: str) -> list[str]:
    """Absolute targets of every navigable ``<a href>`` in *html*, in order."""
    soup = BeautifulSoup(html, "html.parser")
    urls: list[str] = []
    for tag in soup.find_all("a", href=True):
        href = tag.get("href")
        if not isinstance(href, str):
            continue
        href = href.strip()
        if not href or href.startswith(_SKIPPED_PREFIXES):
            continue
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            continue
        if urlparse(absolute).hostname:
            urls.append(absolute)
    return urls


def detect_findings(html: str) -> list[str]:
    """Finding types whose keywords occur anywhere in *html* (case-insensitive)."""
    lowered = html.lower()
    return [
        finding
        for finding, phrases in FINDING_KEYWORDS.items()
        if any(phrase in lowered for phrase in phrases)
    ]


class DomainResearcher:
    """Research helpers built on the CDX index and the snapshot fetcher.

    Args:
        cdx: CDX index for snapshot and URL discovery.
        snapshots: Fetcher for archived page content.
    """

    def __init__(self, cdx: CdxIndex, snapshots: SnapshotFetcher) -> None:
        self._cdx = cdx
        self._snapshots = snapshots

    async def extract_links(self, query: ExtractLinksQuery) -> dict[str, Any]:
        """List the outbound domains (and optionally internal links) of a capture.

        When no timestamp is given the earliest status-200 capture is used.

        Returns:
            ``{url, timestamp, total_links, external_domains, internal_links?}``.

        Raises:
            NotFoundError: If the page has no captures.
        """
        timestamp = query.timestamp
        if not timestamp:
            listing = await self._cdx.get_snapshots(
                SnapshotsQuery(url=query.url, match_type="exact", status_filter="200", limit=1)
            )
            if not listing["snapshots"]:
                raise NotFoundError(f"No archived snapshots found for {query.url}")
            timestamp = listing["snapshots"][0]["timestamp"]

        content = await self._snapshots.get_snapshot_content(
            SnapshotContentQuery(
                url=query.url,
                timestamp=timestamp,
                extract_metadata=False,
                include_raw_html=True,
            )
        )

        source_domain = _bare_host(query.url) or query.url
        links: set[str] = set()
        external_domains: set[str] = set()
        internal_links: list[str] = []

        for absolute in iter_anchor_urls(content.get("raw_html", ""), query.url):
            links.add(absolute)
            link_domain = _bare_host(absolute)
            if _is_external(link_domain, source_domain):
                external_domains.add(link_domain)
            elif query.include_internal:
                internal_links.append(absolute)

        result: dict[str, Any] = {
            "url": query.url,
            "timestamp": timestamp,
            "total_links": len(links),
            "external_domains": sorted(external_domains),
        }
        if query.include_internal:
            result["internal_links"] = internal_links
        return result

    async def research_domain(self, query: ResearchDomainQuery) -> dict[str, Any]:
        """Walk a domain's archived HTML pages oldest-first.

        Discovers up to ``limit`` URLs (at most 1000) first captured on or
        after ``from_year``, then fetches the first capture of up to
        ``process_limit`` of them (at most 50).  Pages that fail to load are
        skipped; the call itself only fails if URL discovery fails.

        Returns:
            ``{domain, total_archived, processed, urls, external_domains,
            findings, path_prefix, notes}``.
        """
        domain = query.domain.removeprefix("https://").removeprefix("http://").rstrip("/")
        limit = min(query.limit, MAX_RESEARCH_LIMIT)
        process_limit = min(query.process_limit, MAX_PROCESS_LIMIT)
        pattern = f"{domain}{query.path_prefix}" if query.path_prefix else domain

        notes: list[str] = []
        client = self._cdx.client

        await client.sleep(CDX_QUERY_DELAY)
        discovered = await self._cdx.get_site_urls(
            SiteUrlsQuery(
                url=pattern,
                match_type="prefix" if query.path_prefix else "domain",
                mime_type_filter="text/html",
                status_filter="200",
                from_=f"{query.from_year}0101",
                limit=min(limit * 2, WB_MAX_LIMIT),
                include_capture_counts=True,
            )
        )

        site_urls: list[dict[str, Any]] = discovered["urls"]
        if not site_urls:
            return self._research_result(
                domain, query.path_prefix, 0, [], set(), [],
                ["No archived URLs found for this domain/path"],
            )

        candidates = sorted(site_urls, key=lambda item: item["first_capture"])[:limit]
        to_process = candidates[:process_limit]

        if discovered["truncated"]:
            notes.append(
                f"Results were truncated. Total URLs may exceed {len(site_urls)}. "
                "Use pathPrefix to narrow scope."
            )
        notes.append(
            f"Found {len(site_urls)} URLs, sorted by oldest first, processing {len(to_process)}"
        )

        processed: list[dict[str, Any]] = []
        external_domains: set[str] = set()
        findings: list[dict[str, Any]] = []
        failed = 0

        for item in to_process:
            url = item["url"]
            timestamp = item["first_capture"]
            await client.sleep(CONTENT_FETCH_DELAY)
            try:
                content = await self._snapshots.get_snapshot_content(
                    SnapshotContentQuery(
                        url=url,
                        timestamp=timestamp,
                        extract_metadata=True,
                        include_raw_html=True,
                    )
                )
            except Exception as exc:  # noqa: BLE001
                failed += 1
                logger.info("wayback: research skipped %s@%s: %s", url, timestamp, exc)
                continue

            html = content.get("raw_html", "")
            metadata = content.get("metadata") or {}
            title = metadata.get("title") or None

            source_domain = _bare_host(url)
            for absolute in iter_anchor_urls(html, url):
                link_domain = _bare_host(absolute)
                if _is_external(link_domain, source_domain):
                    external_domains.add(link_domain)

            processed.append(
                {
                    "url": url,
                    "timestamp": timestamp,
                    "date": format_timestamp(timestamp),
                    "title": title,
                    "description": metadata.get("meta_description") or None,
                }
            )
            findings.extend(
                {"type": finding, "url": url, "timestamp": timestamp, "title": title}
                for finding in detect_findings(html)
            )

        if failed:
            notes.append(f"{failed} page(s) could not be fetched and were skipped")

        logger.info(
            "wayback: researched %s: %d/%d pages processed, %d findings",
            pattern,
            len(processed),
            len(to_process),
            len(findings),
        )

        return self._research_result(
            domain, query.path_prefix, len(site_urls), processed, external_domains, findings, notes
        )

    @staticmethod
    def _research_result(
        domain: str,
        path_prefix: str | None,
        total_archived: int,
        processed: list[dict[str, Any]],
        external_domains: set[str],
        findings: list[dict[str, Any]],
        notes: list[str],
    ) -> dict[str, Any]:
        return {
            "domain": domain,
            "total_archived": total_archived,
            "processed": len(processed),
            "urls": processed,
            "external_domains": sorted(external_domains),
            "findings": findings,
            "path_prefix": path_prefix,
            "notes": notes,
        }
