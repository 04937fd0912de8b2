"""Tool registry: the named-operation boundary over the Wayback services.

Every tool pairs a name and description with the pydantic model that
validates its arguments.  :meth:`ToolRegistry.call` never raises; any
failure is rendered as an error document::

    {"error": {"code": "NOT_FOUND", "message": "...", "details": {...}}}

Example::

    async with WaybackClient() as client:
        registry = ToolRegistry(client)
        print(await registry.call("wayback_check_availability", {"url": "https://example.com"}))
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from wayback_observatory.core.exceptions import WaybackError
from wayback_observatory.core.schemas.queries import (
    AnalyzeChangesQuery,
    AvailabilityQuery,
    BulkCheckQuery,
    ChangesTimelineQuery,
    CompareSnapshotsQuery,
    ExtractLinksQuery,
    ResearchDomainQuery,
    SiteUrlsQuery,
    SnapshotContentQuery,
    SnapshotsQuery,
)
from wayback_observatory.wayback.availability import AvailabilityChecker
from wayback_observatory.wayback.cdx import CdxIndex
from wayback_observatory.wayback.client import WaybackClient
from wayback_observatory.wayback.diff import SnapshotComparer
from wayback_observatory.wayback.research import DomainResearcher
from wayback_observatory.wayback.snapshots import SnapshotFetcher
from wayback_observatory.wayback.timeline import TimelineBuilder

logger = logging.getLogger(__name__)

ERROR_UNKNOWN_TOOL = "UNKNOWN_TOOL"
ERROR_UNKNOWN = "UNKNOWN_ERROR"
ERROR_INVALID_INPUT = "INVALID_INPUT"


@dataclass(frozen=True)
class Tool:
    """A registered tool."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[dict[str, Any]]]

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(by_alias=True),
        }


def error_document(code: str, message: str, details: dict[str, Any] | None = None) -> str:
    """Render an error as the JSON document returned by :meth:`ToolRegistry.call`."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return json.dumps({"error": error}, indent=2)


class ToolRegistry:
    """Build the Wayback services on one client and expose them as tools.

    Args:
        client: Initialized :class:`WaybackClient` shared by every tool.
    """

    def __init__(self, client: WaybackClient) -> None:
        self._client = client
        self.availability = AvailabilityChecker(client)
        self.cdx = CdxIndex(client)
        self.snapshots = SnapshotFetcher(client)
        self.timeline = TimelineBuilder(self.cdx)
        self.comparer = SnapshotComparer(self.cdx, self.snapshots)
        self.researcher = DomainResearcher(self.cdx, self.snapshots)

        self._tools: dict[str, Tool] = {}
        for tool in self._build_tools():
            self._tools[tool.name] = tool

    def _build_tools(self) -> list[Tool]:
        return [
            Tool(
                "wayback_check_availability",
                "Check if a URL is archived in the Wayback Machine and get the closest "
                "available snapshot. Optionally specify a target timestamp to find the "
                "nearest archive to that date.",
                AvailabilityQuery,
                self.availability.check_availability,
            ),
            Tool(
                "wayback_get_snapshots",
                "List archived snapshots of a URL with filtering by date range, status "
                "code and deduplication options, using the CDX Server API.",
                SnapshotsQuery,
                self.cdx.get_snapshots,
            ),
            Tool(
                "wayback_get_snapshot_content",
                "Fetch the content of a specific snapshot with extracted SEO metadata "
                "such as title, meta description and headings.",
                SnapshotContentQuery,
                self.snapshots.get_snapshot_content,
            ),
            Tool(
                "wayback_compare_snapshots",
                "Compare two snapshots of a URL and report differences in title, meta "
                "description, headings, content, links and structure.",
                CompareSnapshotsQuery,
                self.comparer.compare_snapshots,
            ),
            Tool(
                "wayback_bulk_check",
                "Check up to 50 URLs for Wayback Machine availability in one call. "
                "Useful for auditing site archive coverage.",
                BulkCheckQuery,
                self.bulk_check,
            ),
            Tool(
                "wayback_get_changes_timeline",
                "Get a timeline of content changes for a URL by comparing content "
                "digests across snapshots.",
                ChangesTimelineQuery,
                self.timeline.get_changes_timeline,
            ),
            Tool(
                "wayback_analyze_changes",
                "Analyze what changed on a page between two dates. Finds the closest "
                "snapshots and scores the SEO impact of the changes.",
                AnalyzeChangesQuery,
                self.comparer.analyze_changes,
            ),
            Tool(
                "wayback_get_site_urls",
                "Get the unique URLs archived for a domain or URL prefix, with "
                "subdomain, path and MIME type summaries.",
                SiteUrlsQuery,
                self.cdx.get_site_urls,
            ),
            Tool(
                "wayback_extract_links",
                "Extract the links of an archived page and list the external domains "
                "it points to.",
                ExtractLinksQuery,
                self.researcher.extract_links,
            ),
            Tool(
                "wayback_research_domain",
                "Walk a domain's oldest archived pages, collecting titles, outbound "
                "domains and notable findings such as announcements and hiring.",
                ResearchDomainQuery,
                self.researcher.research_domain,
            ),
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_tools(self) -> list[dict[str, Any]]:
        """Return ``[{name, description, input_schema}]`` for every tool."""
        return [tool.describe() for tool in self._tools.values()]

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """Validate *arguments*, run tool *name* and return a JSON document.

        Returns:
            The tool result serialized with two-space indentation, or an
            ``{"error": {...}}`` document.
        """
        tool = self._tools.get(name)
        if tool is None:
            return error_document(ERROR_UNKNOWN_TOOL, f"Unknown tool: {name}")

        try:
            query = tool.input_model.model_validate(arguments or {})
            result = await tool.handler(query)
        except ValidationError as exc:
            logger.info("wayback: invalid arguments for %s: %s", name, exc.error_count())
            return error_document(
                ERROR_INVALID_INPUT,
                "Invalid input parameters",
                {"errors": json.loads(exc.json(include_url=False))},
            )
        except WaybackError as exc:
            logger.warning("wayback: tool %s failed: %s: %s", name, exc.code, exc.message)
            return json.dumps({"error": exc.to_dict()}, indent=2)
        except Exception as exc:  # noqa: BLE001
            logger.exception("wayback: tool %s raised an unexpected error", name)
            return error_document(ERROR_UNKNOWN, str(exc) or exc.__class__.__name__)

        return json.dumps(result, indent=2)

    # ------------------------------------------------------------------
    # Composite tools
    # ------------------------------------------------------------------

    async def bulk_check(self, query: BulkCheckQuery) -> dict[str, Any]:
        """Availability of many URLs plus archive-coverage statistics."""
        records = await self.availability.check_bulk_availability(
            query.urls,
            query.timestamp,
            query.check_www_variant,
        )

        results: list[dict[str, Any]] = []
        for url, record in records.items():
            item: dict[str, Any] = {"url": url, "is_archived": record["is_archived"]}
            closest = record.get("closest_snapshot")
            if closest:
                item["closest_snapshot"] = {
                    "timestamp": closest["timestamp"],
                    "formatted_date": closest["formatted_date"],
                    "wayback_url": closest["url"],
                }
            if record.get("checked_variant"):
                item["checked_variant"] = record["checked_variant"]
            results.append(item)

        count_errors = 0
        if query.include_snapshot_count:
            for item in results:
                try:
                    item["snapshot_count"] = await self.cdx.get_snapshot_count(item["url"])
                except Exception as exc:  # noqa: BLE001
                    logger.info("wayback: snapshot count failed for %s: %s", item["url"], exc)
                    item["snapshot_count"] = -1
                    count_errors += 1

        total = len(query.urls)
        archived = sum(1 for item in results if item["is_archived"])
        timestamps = sorted(
            item["closest_snapshot"]["timestamp"] for item in results if "closest_snapshot" in item
        )

        response: dict[str, Any] = {
            "total_urls": total,
            "archived_count": archived,
            "not_archived_count": total - archived,
            "results": results,
            "summary": {
                "archive_rate": math.floor(archived / total * 100 + 0.5),
                "oldest_snapshot": timestamps[0] if timestamps else "N/A",
                "newest_snapshot": timestamps[-1] if timestamps else "N/A",
            },
        }
        if count_errors:
            response["snapshot_count_errors"] = count_errors
            response["snapshot_count_note"] = (
                f"{count_errors} URL(s) could not retrieve snapshot counts due to rate "
                "limiting or errors. Values of -1 indicate unknown counts."
            )
        return response
