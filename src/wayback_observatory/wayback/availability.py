"""Availability lookups with CDX fallback and www-variant checking.

The Availability API is cheap but has false negatives, notably for sparsely
indexed older sites.  :class:`AvailabilityChecker` therefore resolves a URL
in up to four steps:

1. Availability API for the URL (cached per ``(url, timestamp)``).
2. CDX point query for the same URL when step 1 found nothing.
3. Steps 1 and 2 for the ``www.``-toggled variant, if enabled.
4. Relabel a variant hit under the requested URL with ``checked_variant``.

Only per-URL results are cached; the variant merge is re-derived on every
call from those cached sub-lookups.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlparse, urlunparse

from wayback_observatory.core.cache import CACHE_TTL
from wayback_observatory.core.exceptions import WaybackError
from wayback_observatory.core.schemas.queries import AvailabilityQuery
from wayback_observatory.core.timestamps import format_timestamp, normalize_timestamp
from wayback_observatory.wayback.client import WaybackClient
from wayback_observatory.wayback.config import (
    WB_CALENDAR_URL_TEMPLATE,
    WB_DEFAULT_STATUS_FILTER,
    WB_ENDPOINT_AVAILABILITY,
    WB_ENDPOINT_CDX,
    WB_FALLBACK_FIELDS,
)

logger = logging.getLogger(__name__)

_PROTOCOL_RE = re.compile(r"^https?://")


def archive_org_url(url: str) -> str:
    """Return the calendar page listing every capture of *url*."""
    return WB_CALENDAR_URL_TEMPLATE.format(url=url)


def www_variant(url: str) -> str | None:
    """Return *url* with a leading ``www.`` host label added or removed.

    An empty path is normalized to ``/``, so ``http://example.com`` yields
    ``http://www.example.com/``.  Returns ``None`` when *url* has no host.
    """
    parsed = urlparse(url)
    host = parsed.hostname
    if not host:
        return None

    toggled = host[4:] if host.startswith("www.") else f"www.{host}"
    netloc = toggled if parsed.port is None else f"{toggled}:{parsed.port}"
    if parsed.username:
        credentials = parsed.username
        if parsed.password:
            credentials += f":{parsed.password}"
        netloc = f"{credentials}@{netloc}"

    return urlunparse(parsed._replace(netloc=netloc, path=parsed.path or "/"))


class AvailabilityChecker:
    """Resolve whether URLs are archived.

    Args:
        client: Shared :class:`WaybackClient`.
    """

    def __init__(self, client: WaybackClient) -> None:
        self._client = client

    async def check_availability(self, query: AvailabilityQuery) -> dict[str, Any]:
        """Return the availability record for ``query.url``.

        Returns:
            ``{url, is_archived, archive_org_url, closest_snapshot?,
            checked_variant?}``.  ``closest_snapshot`` is
            ``{url, timestamp, formatted_date, status}``.
        """
        result = await self._check_single(query.url, query.timestamp)

        if not result["is_archived"] and query.check_www_variant:
            variant = www_variant(query.url)
            if variant:
                variant_result = await self._check_single(variant, query.timestamp)
                if variant_result["is_archived"]:
                    return {
                        **variant_result,
                        "url": query.url,
                        "archive_org_url": archive_org_url(query.url),
                        "checked_variant": variant,
                    }

        return result

    async def check_bulk_availability(
        self,
        urls: list[str],
        timestamp: str | None = None,
        check_www_variant: bool = True,
    ) -> dict[str, dict[str, Any]]:
        """Check each URL in turn, never aborting on a single failure.

        A URL whose lookup raises (including an invalid URL) is reported as
        not archived.

        Returns:
            Mapping of input URL to its availability record, in input order.
        """
        results: dict[str, dict[str, Any]] = {}
        for url in urls:
            try:
                query = AvailabilityQuery(
                    url=url,
                    timestamp=timestamp,
                    check_www_variant=check_www_variant,
                )
                results[url] = await self.check_availability(query)
            except Exception as exc:  # noqa: BLE001
                logger.info("wayback: availability check failed for %s: %s", url, exc)
                results[url] = {
                    "url": url,
                    "is_archived": False,
                    "archive_org_url": archive_org_url(url),
                }
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _check_single(self, url: str, timestamp: str | None) -> dict[str, Any]:
        """Availability API lookup for one URL, with CDX fallback.  Cached."""
        cache = self._client.cache
        cache_key = cache.generate_key("availability", {"url": url, "timestamp": timestamp})

        cached = cache.get(cache_key)
        if cached:
            return cached

        params: dict[str, Any] = {"url": url}
        if timestamp:
            params["timestamp"] = normalize_timestamp(timestamp)

        payload = await self._client.with_retry(
            lambda: self._client.fetch_json(self._client.AVAILABILITY_API, params),
            WB_ENDPOINT_AVAILABILITY,
        )

        closest = None
        if isinstance(payload, dict):
            closest = (payload.get("archived_snapshots") or {}).get("closest")

        result: dict[str, Any] = {
            "url": url,
            "is_archived": bool(closest and closest.get("available")),
            "archive_org_url": archive_org_url(url),
        }
        if closest:
            result["closest_snapshot"] = {
                "url": closest.get("url", ""),
                "timestamp": closest.get("timestamp", ""),
                "formatted_date": format_timestamp(closest.get("timestamp", "")),
                "status": closest.get("status", ""),
            }

        if not result["is_archived"]:
            fallback = await self._cdx_fallback(url, timestamp)
            if fallback:
                result = fallback

        cache.set(cache_key, result, CACHE_TTL["availability"])
        return result

    async def _cdx_fallback(self, url: str, timestamp: str | None) -> dict[str, Any] | None:
        """Look for a status-200 capture in the CDX index.

        Failures are logged and treated as "no capture found".
        """
        params: dict[str, Any] = {
            "url": _PROTOCOL_RE.sub("", url).rstrip("/"),
            "limit": 1,
            "fl": WB_FALLBACK_FIELDS,
            "filter": WB_DEFAULT_STATUS_FILTER,
        }
        if timestamp:
            params["closest"] = normalize_timestamp(timestamp)
            params["sort"] = "closest"

        try:
            rows = await self._client.with_retry(
                lambda: self._client.fetch_cdx(params, lenient=True),
                WB_ENDPOINT_CDX,
            )
        except WaybackError as exc:
            logger.warning("wayback: CDX fallback failed for %s: %s", url, exc.message)
            return None

        if len(rows) < 2 or not isinstance(rows[1], list) or len(rows[1]) < 2:
            return None

        row = rows[1]
        ts, original = row[0], row[1]
        status = row[2] if len(row) > 2 and row[2] else "200"
        return {
            "url": url,
            "is_archived": True,
            "closest_snapshot": {
                "url": self._client.get_snapshot_url(ts, original),
                "timestamp": ts,
                "formatted_date": format_timestamp(ts),
                "status": status,
            },
            "archive_org_url": archive_org_url(url),
        }
