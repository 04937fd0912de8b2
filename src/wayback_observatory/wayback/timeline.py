"""Content-change timelines derived from CDX digests.

A change event is emitted wherever two consecutive captures in a
time-collapsed listing carry different content digests.  No page content is
fetched.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Any

from wayback_observatory.core.cache import CACHE_TTL
from wayback_observatory.core.schemas.queries import ChangesTimelineQuery, SnapshotsQuery
from wayback_observatory.core.timestamps import format_duration, parse_timestamp
from wayback_observatory.wayback.cdx import CdxIndex
from wayback_observatory.wayback.config import WB_TIMELINE_LIMIT

# Weekly timelines are built from the daily listing and thinned afterwards.
_LISTING_COLLAPSE: dict[str, str] = {
    "daily": "daily",
    "weekly": "daily",
    "monthly": "monthly",
}

# Upper bounds (exclusive, in days) of the mean interval for each class.
_FREQUENCY_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (7, "very_frequent"),
    (30, "frequent"),
    (90, "moderate"),
    (180, "infrequent"),
)


def classify_frequency(average_days: float) -> str:
    """Map a mean interval between changes to a frequency class."""
    for upper, label in _FREQUENCY_THRESHOLDS:
        if average_days < upper:
            return label
    return "rare"


def days_between_dates(timestamp1: str, timestamp2: str) -> int:
    """Whole days between the calendar dates of two timestamps, rounded up."""
    delta = abs(parse_timestamp(timestamp2[:8]) - parse_timestamp(timestamp1[:8]))
    return math.ceil(delta.total_seconds() / 86400)


def most_active_month(events: list[dict[str, Any]]) -> str:
    """Return the ``YYYY-MM`` with the most events (earliest-seen wins ties)."""
    if not events:
        return "N/A"
    counts = Counter(event["timestamp"][:6] for event in events)
    month, _ = counts.most_common(1)[0]
    return f"{month[:4]}-{month[4:6]}"


def thin_weekly(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep every 7th event plus the last one.

    This is an index filter over the daily change sequence, not a resampling
    into calendar weeks.
    """
    last = len(events) - 1
    return [event for index, event in enumerate(events) if index % 7 == 0 or index == last]


class TimelineBuilder:
    """Build changes timelines on top of a :class:`CdxIndex`.

    Args:
        cdx: CDX index used for the underlying snapshot listing.
    """

    def __init__(self, cdx: CdxIndex) -> None:
        self._cdx = cdx

    async def get_changes_timeline(self, query: ChangesTimelineQuery) -> dict[str, Any]:
        """Return the change events for ``query.url`` and summary statistics.

        Returns:
            ``{url, date_range {from, to}, total_snapshots, total_changes,
            change_events, summary {average_time_between_changes,
            most_active_month, change_frequency}}``.
        """
        cache = self._cdx.client.cache
        cache_key = cache.generate_key("timeline", query.model_dump())
        cached = cache.get(cache_key)
        if cached:
            return cached

        listing = await self._cdx.get_snapshots(
            SnapshotsQuery(
                url=query.url,
                from_=query.from_,
                to=query.to,
                match_type="exact",
                status_filter="200",
                collapse=_LISTING_COLLAPSE[query.granularity],
                limit=WB_TIMELINE_LIMIT,
            )
        )

        events: list[dict[str, Any]] = []
        previous: dict[str, Any] | None = None
        for snapshot in listing["snapshots"]:
            if previous is not None and previous["digest"] != snapshot["digest"]:
                events.append(
                    {
                        "timestamp": snapshot["timestamp"],
                        "formatted_date": snapshot["formatted_date"],
                        "previous_timestamp": previous["timestamp"],
                        "days_since_previous": days_between_dates(
                            previous["timestamp"], snapshot["timestamp"]
                        ),
                        "change_type": "content",
                        "digest_before": previous["digest"],
                        "digest_after": snapshot["digest"],
                        "wayback_url": snapshot["wayback_url"],
                    }
                )
            previous = snapshot

        if query.granularity == "weekly":
            events = thin_weekly(events)

        average = (
            sum(event["days_since_previous"] for event in events) / len(events) if events else 0.0
        )

        result: dict[str, Any] = {
            "url": query.url,
            "date_range": {
                "from": listing["date_range"]["first"],
                "to": listing["date_range"]["last"],
            },
            "total_snapshots": listing["total_snapshots"],
            "total_changes": len(events),
            "change_events": events,
            "summary": {
                "average_time_between_changes": format_duration(average),
                "most_active_month": most_active_month(events),
                "change_frequency": classify_frequency(average),
            },
        }

        cache.set(cache_key, result, CACHE_TTL["cdx_queries"])
        return result
