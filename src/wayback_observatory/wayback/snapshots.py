"""Archived page retrieval.

Pages are always fetched through the raw ``id_`` address so no Wayback
toolbar markup leaks into extracted metadata.  The upstream redirects to the
closest available capture when the requested timestamp has none; the
resolved timestamp is read back from the final URL.
"""

from __future__ import annotations

import logging
from typing import Any

from wayback_observatory.core.cache import CACHE_TTL
from wayback_observatory.core.exceptions import NotFoundError
from wayback_observatory.core.schemas.queries import SnapshotContentQuery
from wayback_observatory.core.timestamps import (
    extract_timestamp_from_wayback_url,
    format_timestamp,
)
from wayback_observatory.wayback.client import WaybackClient
from wayback_observatory.wayback.config import WB_ENDPOINT_CONTENT
from wayback_observatory.wayback.html_parser import ParsedContent, parse_html, truncate_text

logger = logging.getLogger(__name__)


def metadata_summary(parsed: ParsedContent) -> dict[str, Any]:
    """Reduce a :class:`ParsedContent` to the SEO metadata record."""
    external = sum(1 for link in parsed.links if link.is_external)
    return {
        "title": parsed.title,
        "meta_description": parsed.meta_description,
        "meta_keywords": parsed.meta_keywords,
        "canonical_url": parsed.canonical_url,
        "og_title": parsed.og_title,
        "og_description": parsed.og_description,
        "h1": parsed.h1,
        "h2": parsed.h2,
        "robots": parsed.robots,
        "word_count": parsed.word_count,
        "link_count": {
            "internal": len(parsed.links) - external,
            "external": external,
        },
    }


class SnapshotFetcher:
    """Fetch and parse archived pages.

    Args:
        client: Shared :class:`WaybackClient`.
    """

    def __init__(self, client: WaybackClient) -> None:
        self._client = client

    async def get_snapshot_content(self, query: SnapshotContentQuery) -> dict[str, Any]:
        """Fetch one capture and optionally extract its metadata.

        Responses without raw HTML are cached for seven days, keyed by
        ``(url, timestamp, extract_metadata)``.

        Returns:
            ``{url, timestamp, formatted_date, wayback_url, status_code,
            content_length, metadata?, text_content?, raw_html?,
            requested_timestamp?, note?}``.  ``timestamp`` is the resolved
            capture, which may differ from the requested one.

        Raises:
            NotFoundError: If the capture does not exist.
        """
        cache = self._client.cache
        cache_key = cache.generate_key(
            "content",
            {
                "url": query.url,
                "timestamp": query.timestamp,
                "extract_metadata": query.extract_metadata,
            },
        )

        if not query.include_raw_html:
            cached = cache.get(cache_key)
            if cached:
                return cached

        raw_url = self._client.get_raw_snapshot_url(query.timestamp, query.url)
        try:
            html, final_url = await self._client.with_retry(
                lambda: self._client.fetch_text_with_final_url(raw_url),
                WB_ENDPOINT_CONTENT,
            )
        except NotFoundError as exc:
            raise NotFoundError(
                f"Snapshot not found for {query.url} at {query.timestamp}",
                exc.details,
            ) from exc

        actual_timestamp = extract_timestamp_from_wayback_url(final_url) or query.timestamp

        result: dict[str, Any] = {
            "url": query.url,
            "timestamp": actual_timestamp,
            "formatted_date": format_timestamp(actual_timestamp),
            "wayback_url": self._client.get_snapshot_url(actual_timestamp, query.url),
            "status_code": 200,
            "content_length": len(html),
        }

        if query.extract_metadata:
            parsed = parse_html(html, query.url)
            result["metadata"] = metadata_summary(parsed)
            result["text_content"] = truncate_text(parsed.text_content, query.max_content_length)

        if actual_timestamp != query.timestamp:
            result["requested_timestamp"] = query.timestamp
            result["note"] = (
                f"Closest snapshot found. Requested: {query.timestamp}, Actual: {actual_timestamp}"
            )
            logger.debug(
                "wayback: %s resolved %s to %s",
                query.url,
                query.timestamp,
                actual_timestamp,
            )

        if query.include_raw_html:
            result["raw_html"] = html
        else:
            cache.set(cache_key, result, CACHE_TTL["snapshot_content"])

        return result

    async def get_parsed_content(self, url: str, timestamp: str) -> ParsedContent:
        """Fetch a capture's raw HTML and parse it.  Not cached."""
        raw_url = self._client.get_raw_snapshot_url(timestamp, url)
        html = await self._client.with_retry(
            lambda: self._client.fetch_text(raw_url),
            WB_ENDPOINT_CONTENT,
        )
        return parse_html(html, url)
