"""Snapshot comparison and SEO change analysis.

:meth:`SnapshotComparer.compare_snapshots` diffs two captures of a page
element by element; :meth:`SnapshotComparer.analyze_changes` resolves the
captures nearest two calendar dates and scores the differences for search
impact.  Neither result is cached.
"""

from __future__ import annotations

import asyncio
import difflib
import logging
from typing import Any

from wayback_observatory.core.exceptions import NotFoundError
from wayback_observatory.core.schemas.queries import AnalyzeChangesQuery, CompareSnapshotsQuery
from wayback_observatory.core.timestamps import days_between, format_timestamp, normalize_timestamp
from wayback_observatory.wayback import _seo
from wayback_observatory.wayback.cdx import CdxIndex
from wayback_observatory.wayback.html_parser import (
    ParsedContent,
    structured_data_types,
    truncate_text,
)
from wayback_observatory.wayback.snapshots import SnapshotFetcher

logger = logging.getLogger(__name__)

_SECTION_MIN_LENGTH = 50
_SECTION_MAX_LENGTH = 200
_MAX_SECTIONS = 5
_MAX_LINKS = 10


# ---------------------------------------------------------------------------
# Element comparisons
# ---------------------------------------------------------------------------


def _changed_sections(before: str, after: str) -> tuple[list[str], list[str]]:
    """Collect added and removed line blocks longer than the section threshold."""
    before_lines = before.splitlines()
    after_lines = after.splitlines()
    added: list[str] = []
    removed: list[str] = []
    matcher = difflib.SequenceMatcher(a=before_lines, b=after_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("delete", "replace"):
            block = "\n".join(before_lines[i1:i2]).strip()
            if len(block) > _SECTION_MIN_LENGTH:
                removed.append(truncate_text(block, _SECTION_MAX_LENGTH))
        if tag in ("insert", "replace"):
            block = "\n".join(after_lines[j1:j2]).strip()
            if len(block) > _SECTION_MIN_LENGTH:
                added.append(truncate_text(block, _SECTION_MAX_LENGTH))
    return added[:_MAX_SECTIONS], removed[:_MAX_SECTIONS]


def compare_content(before: str, after: str, show_diff: bool) -> dict[str, Any]:
    """Word-count deltas plus an optional unified diff of two page texts."""
    words_before = len(before.split())
    words_after = len(after.split())
    delta = words_after - words_before
    percent = delta / words_before * 100 if words_before > 0 else 0

    result: dict[str, Any] = {
        "changed": before != after,
        "word_count_before": words_before,
        "word_count_after": words_after,
        "word_count_delta": delta,
        "percent_change": round(percent, 2),
        "added_sections": [],
        "removed_sections": [],
    }

    if show_diff and before != after:
        result["diff"] = "".join(
            difflib.unified_diff(
                before.splitlines(keepends=True),
                after.splitlines(keepends=True),
                fromfile="before",
                tofile="after",
                n=3,
            )
        )
        result["added_sections"], result["removed_sections"] = _changed_sections(before, after)

    return result


def compare_links(before: ParsedContent, after: ParsedContent) -> dict[str, Any]:
    before_hrefs = list(dict.fromkeys(link.href for link in before.links))
    after_hrefs = list(dict.fromkeys(link.href for link in after.links))
    before_set, after_set = set(before_hrefs), set(after_hrefs)
    added = [href for href in after_hrefs if href not in before_set]
    removed = [href for href in before_hrefs if href not in after_set]

    external_before = sum(1 for link in before.links if link.is_external)
    external_after = sum(1 for link in after.links if link.is_external)
    internal_before = len(before.links) - external_before
    internal_after = len(after.links) - external_after

    return {
        "changed": bool(added or removed),
        "added_links": added[:_MAX_LINKS],
        "removed_links": removed[:_MAX_LINKS],
        "internal_delta": internal_after - internal_before,
        "external_delta": external_after - external_before,
    }


def compare_structure(before: ParsedContent, after: ParsedContent) -> dict[str, Any]:
    types_before = structured_data_types(before.structured_data)
    types_after = structured_data_types(after.structured_data)
    canonical_changed = before.canonical_url != after.canonical_url
    robots_changed = before.robots != after.robots
    return {
        "changed": canonical_changed or robots_changed or types_before != types_after,
        "schema_markup_before": types_before,
        "schema_markup_after": types_after,
        "canonical_changed": canonical_changed,
        "robots_changed": robots_changed,
    }


def summarize_changes(changes: dict[str, Any], days: int) -> str:
    """One-sentence description of a comparison result."""
    if not changes:
        return f"No significant changes detected over {days} days."

    parts: list[str] = []
    if changes.get("title", {}).get("changed"):
        parts.append("title changed")
    if changes.get("meta_description", {}).get("changed"):
        parts.append("meta description changed")
    if changes.get("headings", {}).get("h1_changed"):
        parts.append("H1 changed")
    content = changes.get("content")
    if content and content["changed"]:
        delta = content["word_count_delta"]
        if delta > 0:
            parts.append(f"{delta} words added")
        elif delta < 0:
            parts.append(f"{abs(delta)} words removed")
        else:
            parts.append("content reorganized")
    if changes.get("links", {}).get("changed"):
        parts.append("links modified")

    return f"Over {days} days: {', '.join(parts)}."


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class SnapshotComparer:
    """Compare captures of the same page.

    Args:
        cdx: CDX index used to resolve captures near a date.
        snapshots: Fetcher used to download and parse captures.
    """

    def __init__(self, cdx: CdxIndex, snapshots: SnapshotFetcher) -> None:
        self._cdx = cdx
        self._snapshots = snapshots

    async def _fetch_pair(
        self, url: str, timestamp1: str, timestamp2: str
    ) -> tuple[ParsedContent, ParsedContent]:
        if timestamp1 == timestamp2:
            parsed = await self._snapshots.get_parsed_content(url, timestamp1)
            return parsed, parsed
        first, second = await asyncio.gather(
            self._snapshots.get_parsed_content(url, timestamp1),
            self._snapshots.get_parsed_content(url, timestamp2),
        )
        return first, second

    async def compare_snapshots(self, query: CompareSnapshotsQuery) -> dict[str, Any]:
        """Diff two captures of ``query.url``.

        Only elements listed in ``query.compare_elements`` (or every element
        when it contains ``"all"``) are compared, and an element appears in
        ``changes`` only when it differs.

        Returns:
            ``{url, snapshot1, snapshot2, days_between, has_changes, changes,
            summary}``.
        """
        timestamp1 = normalize_timestamp(query.timestamp1)
        timestamp2 = normalize_timestamp(query.timestamp2)
        before, after = await self._fetch_pair(query.url, timestamp1, timestamp2)

        elements = set(query.compare_elements)
        compare_all = "all" in elements

        def wanted(element: str) -> bool:
            return compare_all or element in elements

        changes: dict[str, Any] = {}

        if wanted("title") and before.title != after.title:
            changes["title"] = {"changed": True, "before": before.title, "after": after.title}

        if wanted("description") and before.meta_description != after.meta_description:
            changes["meta_description"] = {
                "changed": True,
                "before": before.meta_description,
                "after": after.meta_description,
            }

        if wanted("headings"):
            h1_changed = before.h1 != after.h1
            h2_changed = before.h2 != after.h2
            if h1_changed or h2_changed:
                changes["headings"] = {
                    "h1_changed": h1_changed,
                    "h2_changed": h2_changed,
                    "before": {"h1": before.h1, "h2": before.h2},
                    "after": {"h1": after.h1, "h2": after.h2},
                }

        if wanted("content"):
            content = compare_content(before.text_content, after.text_content, query.show_diff)
            if content["changed"]:
                changes["content"] = content

        if wanted("links"):
            links = compare_links(before, after)
            if links["changed"]:
                changes["links"] = links

        if wanted("structure"):
            structure = compare_structure(before, after)
            if structure["changed"]:
                changes["structure"] = structure

        days = days_between(timestamp1, timestamp2)

        return {
            "url": query.url,
            "snapshot1": {
                "timestamp": timestamp1,
                "formatted_date": format_timestamp(timestamp1),
            },
            "snapshot2": {
                "timestamp": timestamp2,
                "formatted_date": format_timestamp(timestamp2),
            },
            "days_between": days,
            "has_changes": bool(changes),
            "changes": changes,
            "summary": summarize_changes(changes, days),
        }

    async def analyze_changes(self, query: AnalyzeChangesQuery) -> dict[str, Any]:
        """Score the SEO impact of changes between two dates.

        Raises:
            NotFoundError: If no capture can be found near either date.
        """
        before_ts = normalize_timestamp(query.before_date)
        after_ts = normalize_timestamp(query.after_date)

        before_snapshot, after_snapshot = await asyncio.gather(
            self._cdx.find_closest_snapshot(query.url, before_ts),
            self._cdx.find_closest_snapshot(query.url, after_ts),
        )
        if before_snapshot is None or after_snapshot is None:
            raise NotFoundError(
                "Could not find snapshots near the requested dates",
                {"url": query.url},
            )

        before, after = await self._fetch_pair(
            query.url, before_snapshot["timestamp"], after_snapshot["timestamp"]
        )

        changes = _seo.build_detailed_changes(before, after)
        analysis = _seo.score_impact(before, after, changes)

        logger.info(
            "wayback: analyzed %s between %s and %s: %s (%d)",
            query.url,
            before_snapshot["timestamp"],
            after_snapshot["timestamp"],
            analysis["overall_impact"],
            analysis["impact_score"],
        )

        return {
            "url": query.url,
            "before_snapshot": self._resolved(before_snapshot, query.before_date, before_ts),
            "after_snapshot": self._resolved(after_snapshot, query.after_date, after_ts),
            "seo_impact_analysis": analysis,
            "changes": changes,
            "recommendations": _seo.recommendations(analysis),
            "correlation_notes": _seo.correlation_notes(changes, analysis),
        }

    @staticmethod
    def _resolved(snapshot: dict[str, Any], requested: str, requested_ts: str) -> dict[str, Any]:
        return {
            "timestamp": snapshot["timestamp"],
            "formatted_date": format_timestamp(snapshot["timestamp"]),
            "requested_date": requested,
            "days_from_requested": days_between(requested_ts, snapshot["timestamp"]),
        }
