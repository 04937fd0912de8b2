"""SEO impact scoring for before/after page comparisons.

Internal module used by
:meth:`~wayback_observatory.wayback.diff.SnapshotComparer.analyze_changes`.
The point table is heuristic: each detected change adds or subtracts a fixed
number of points and the total is clamped to ``[-100, 100]``.
"""

from __future__ import annotations

import json
from typing import Any

from wayback_observatory.wayback.html_parser import ParsedContent, structured_data_types

_SCORE_BOUND = 100
_TITLE_MAX_LENGTH = 60
_DESCRIPTION_MAX_LENGTH = 160


def _percent_change(before: int, after: int) -> float:
    if before <= 0:
        return 0
    return round((after - before) / before * 100, 2)


def _link_counts(parsed: ParsedContent) -> tuple[int, int]:
    external = sum(1 for link in parsed.links if link.is_external)
    return len(parsed.links) - external, external


def assess(before: Any, after: Any) -> str:
    """Classify a field change as improved, degraded, neutral or unchanged."""
    if json.dumps(before) == json.dumps(after):
        return "unchanged"
    if isinstance(before, (int, float)) and isinstance(after, (int, float)):
        return "improved" if after > before else "degraded"
    if isinstance(before, list) and isinstance(after, list):
        return "neutral" if len(after) >= len(before) else "degraded"
    if isinstance(before, str) and isinstance(after, str):
        if len(after) > len(before) and len(before) < _DESCRIPTION_MAX_LENGTH:
            return "improved"
        if len(after) < len(before):
            return "degraded"
    return "neutral"


def change_detail(before: Any, after: Any) -> dict[str, Any]:
    assessment = assess(before, after)
    return {
        "changed": assessment != "unchanged",
        "before": before,
        "after": after,
        "assessment": assessment,
    }


def build_detailed_changes(before: ParsedContent, after: ParsedContent) -> dict[str, Any]:
    """Per-field change details between two parsed pages."""
    internal_before, external_before = _link_counts(before)
    internal_after, external_after = _link_counts(after)

    return {
        "title": change_detail(before.title, after.title),
        "meta_description": change_detail(before.meta_description, after.meta_description),
        "h1": change_detail(before.h1, after.h1),
        "content_length": {
            "before": before.word_count,
            "after": after.word_count,
            "delta": after.word_count - before.word_count,
            "percent_change": _percent_change(before.word_count, after.word_count),
        },
        "internal_links": change_detail(internal_before, internal_after),
        "external_links": change_detail(external_before, external_after),
        "structured_data": change_detail(
            structured_data_types(before.structured_data),
            structured_data_types(after.structured_data),
        ),
        "canonical": change_detail(before.canonical_url, after.canonical_url),
        "robots": change_detail(before.robots, after.robots),
    }


def _format_percent(value: float) -> str:
    return f"{value:g}"


def score_impact(
    before: ParsedContent, after: ParsedContent, changes: dict[str, Any]
) -> dict[str, Any]:
    """Apply the SEO point table to *changes*.

    Returns:
        ``{overall_impact, impact_score, critical_changes, potential_issues,
        improvements}``.
    """
    score = 0
    critical: list[str] = []
    issues: list[str] = []
    improvements: list[str] = []

    if changes["title"]["changed"]:
        if not after.title:
            score -= 30
            critical.append("Title tag was removed")
        elif not before.title:
            score += 20
            improvements.append("Title tag was added")
        elif len(after.title) > len(before.title) and len(after.title) <= _TITLE_MAX_LENGTH:
            score += 5
            improvements.append("Title was improved")
        elif len(after.title) > _TITLE_MAX_LENGTH:
            score -= 5
            issues.append("Title may be too long (>60 chars)")

    if changes["meta_description"]["changed"]:
        if not after.meta_description and before.meta_description:
            score -= 15
            critical.append("Meta description was removed")
        elif after.meta_description and not before.meta_description:
            score += 15
            improvements.append("Meta description was added")

    if changes["h1"]["changed"]:
        if not after.h1 and before.h1:
            score -= 20
            critical.append("H1 heading was removed")
        elif len(after.h1) > 1:
            score -= 5
            issues.append("Multiple H1 tags may cause SEO issues")

    percent = changes["content_length"]["percent_change"]
    if percent < -30:
        score -= 20
        critical.append(f"Content reduced by {_format_percent(abs(percent))}%")
    elif percent > 30:
        score += 10
        improvements.append(f"Content increased by {_format_percent(percent)}%")

    if changes["robots"]["changed"] and "noindex" in str(changes["robots"]["after"]).lower():
        score -= 50
        critical.append("Page set to noindex")

    if changes["canonical"]["changed"] and changes["canonical"]["after"]:
        score -= 10
        issues.append("Canonical URL was changed")

    if score > 10:
        overall = "positive"
    elif score < -10:
        overall = "negative"
    elif critical and improvements:
        overall = "mixed"
    else:
        overall = "neutral"

    return {
        "overall_impact": overall,
        "impact_score": max(-_SCORE_BOUND, min(_SCORE_BOUND, score)),
        "critical_changes": critical,
        "potential_issues": issues,
        "improvements": improvements,
    }


# Critical-change marker -> recommendation, in output order.
_RECOMMENDATIONS: tuple[tuple[str, str], ...] = (
    ("Title tag was removed", "Restore the title tag - this is critical for SEO"),
    ("Meta description was removed", "Add a meta description to improve click-through rates"),
    ("H1 heading was removed", "Add an H1 heading that includes your target keyword"),
    ("noindex", "Remove noindex if this page should appear in search results"),
    (
        "Content reduced",
        "Review content reduction - significant content loss may impact rankings",
    ),
)


def recommendations(analysis: dict[str, Any]) -> list[str]:
    critical = analysis["critical_changes"]
    result = [
        advice
        for marker, advice in _RECOMMENDATIONS
        if any(marker in change for change in critical)
    ]
    if not result and analysis["overall_impact"] == "neutral":
        result.append("No significant SEO issues detected in the changes")
    return result


def correlation_notes(changes: dict[str, Any], analysis: dict[str, Any]) -> str:
    notes: list[str] = []
    if analysis["overall_impact"] == "negative":
        notes.append(
            "The changes between these dates appear to have negative SEO implications."
        )
    if analysis["critical_changes"]:
        notes.append(
            f"{len(analysis['critical_changes'])} critical change(s) detected "
            "that may affect rankings."
        )
    if changes["content_length"]["percent_change"] < -20:
        notes.append("Significant content reduction often correlates with ranking drops.")
    if not notes:
        notes.append("Changes appear minimal and unlikely to significantly impact rankings.")
    return " ".join(notes)
