"""Shared transport for all Wayback Machine API modules.

:class:`WaybackClient` owns the three process-wide collaborators every API
module needs: the ``httpx.AsyncClient``, the
:class:`~wayback_observatory.core.rate_limiter.RateLimiter`, and the
:class:`~wayback_observatory.core.cache.Cache`.  Each is injectable so tests
can supply a fake clock, a recording sleep, and a temporary cache file.

Two responsibilities live here and nowhere else:

- :meth:`WaybackClient.fetch` is the only place where httpx outcomes are
  turned into the :mod:`~wayback_observatory.core.exceptions` taxonomy.
- :meth:`WaybackClient.with_retry` is the only place where rate-limit
  admission and status-aware exponential backoff are applied.

Typical usage::

    async with WaybackClient() as client:
        rows = await client.with_retry(
            lambda: client.fetch_cdx({"url": "example.com"}),
            WB_ENDPOINT_CDX,
        )
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from wayback_observatory.config.settings import Settings, get_settings
from wayback_observatory.core.cache import Cache
from wayback_observatory.core.exceptions import (
    FetchError,
    NotFoundError,
    ParseError,
    RateLimitedError,
    RequestTimeoutError,
    UpstreamHTTPError,
)
from wayback_observatory.core.rate_limiter import RateLimiter
from wayback_observatory.wayback.config import (
    WB_AVAILABILITY_URL,
    WB_CDX_BASE_URL,
    WB_DEFAULT_OUTPUT,
    WB_SNAPSHOT_BASE_URL,
    WB_USER_AGENT_ACCEPT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryParams = dict[str, Any] | list[tuple[str, Any]]

# Statuses the upstream uses to ask callers to slow down.
_THROTTLE_STATUSES: frozenset[int] = frozenset({429, 503})


class WaybackClient:
    """Rate-limited, retrying, caching HTTP client for archive.org.

    Args:
        settings: Application settings.  Defaults to :func:`get_settings`.
        http_client: Optional injected :class:`httpx.AsyncClient`.  When
            given, the caller owns it and :meth:`close` leaves it open.
        rate_limiter: Optional injected limiter; a default one is built
            otherwise.
        cache: Optional injected cache; otherwise one is built at
            ``settings.cache_path``.
        sleep: Awaitable used for retry backoff and courtesy pauses.
    """

    AVAILABILITY_API: str = WB_AVAILABILITY_URL
    CDX_API: str = WB_CDX_BASE_URL
    SNAPSHOT_BASE: str = WB_SNAPSHOT_BASE_URL

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        cache: Cache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_http_client = http_client is None
        self._http_client = http_client or self._build_http_client()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache or Cache(
            self._settings.cache_path,
            default_ttl=self._settings.cache_ttl,
        )
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _build_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout,
            follow_redirects=True,
            headers={
                "User-Agent": self._settings.user_agent,
                "Accept": WB_USER_AGENT_ACCEPT,
            },
        )

    async def initialize(self) -> None:
        """Load the persisted cache.  Must be awaited before any API call."""
        self.cache.initialize()

    async def close(self) -> None:
        """Persist the cache and close the HTTP client if this instance owns it."""
        self.cache.close()
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> WaybackClient:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def sleep(self, seconds: float) -> None:
        """Pause through the injected sleep callable."""
        await self._sleep(seconds)

    # ------------------------------------------------------------------
    # Retry policy
    # ------------------------------------------------------------------

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        endpoint: str,
        max_retries: int | None = None,
    ) -> T:
        """Run *operation* under rate limiting and status-aware backoff.

        Every attempt first acquires a rate-limit slot for *endpoint*.
        Failures are handled by kind:

        - HTTP 429/503: sleep ``2**attempt * 2`` seconds and try again.  The
          sleep happens even after the final attempt; the loop then ends.
        - HTTP 404: raise :class:`NotFoundError` immediately.
        - Other HTTP 5xx: sleep ``2**attempt`` seconds while attempts remain.
        - Any other HTTP status: raise :class:`UpstreamHTTPError` immediately.
        - Transport and parse failures: sleep ``2**attempt`` seconds while
          attempts remain.

        Args:
            operation: Zero-argument coroutine factory performing one attempt.
            endpoint: Endpoint label used for rate-limit classification.
            max_retries: Attempt budget.  Defaults to ``settings.max_retries``.

        Returns:
            Whatever *operation* returns on its first successful attempt.

        Raises:
            NotFoundError: On HTTP 404.
            UpstreamHTTPError: On a non-retryable status, or the last
                retryable HTTP failure once the budget is exhausted.
            FetchError: The last transport failure once the budget is exhausted.
            ParseError: The last parse failure once the budget is exhausted.
        """
        attempts = max_retries if max_retries is not None else self._settings.max_retries
        last_error: Exception | None = None

        for attempt in range(attempts):
            await self.rate_limiter.acquire(endpoint)
            try:
                return await operation()
            except UpstreamHTTPError as exc:
                last_error = exc
                status = exc.status_code

                if status in _THROTTLE_STATUSES:
                    wait = 2**attempt * 2.0
                    logger.warning(
                        "wayback: rate limited/unavailable (HTTP %d). Waiting %.1fs...",
                        status,
                        wait,
                        extra={"status": status, "attempt": attempt, "wait_seconds": wait},
                    )
                    await self.sleep(wait)
                    continue

                if status == 404:
                    raise NotFoundError(
                        "URL not found in Wayback Machine",
                        {"status": status},
                    ) from exc

                if status >= 500 and attempt < attempts - 1:
                    wait = 2**attempt * 1.0
                    logger.warning(
                        "wayback: server error (HTTP %d). Retrying in %.1fs...",
                        status,
                        wait,
                        extra={"status": status, "attempt": attempt, "wait_seconds": wait},
                    )
                    await self.sleep(wait)
                    continue

                raise
            except (FetchError, ParseError) as exc:
                last_error = exc
                if attempt < attempts - 1:
                    wait = 2**attempt * 1.0
                    logger.warning(
                        "wayback: request failed (%s). Retrying in %.1fs...",
                        exc.message,
                        wait,
                        extra={"attempt": attempt, "wait_seconds": wait},
                    )
                    await self.sleep(wait)

        if last_error is None:
            raise FetchError("Unknown error occurred")
        raise last_error

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def fetch(self, url: str, params: QueryParams | None = None) -> httpx.Response:
        """Issue a single GET and map the outcome to the exception taxonomy.

        Redirects are followed.  Nothing is retried here; wrap calls in
        :meth:`with_retry`.

        Raises:
            RateLimitedError: On HTTP 429 or 503.
            UpstreamHTTPError: On any other non-2xx status.
            RequestTimeoutError: When httpx times out.
            FetchError: On any other transport failure.
        """
        try:
            response = await self._http_client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"Request timed out: {url}",
                {"url": url},
            ) from exc
        except httpx.RequestError as exc:
            raise FetchError(f"Request error: {exc}", {"url": url}) from exc

        status = response.status_code
        if status in _THROTTLE_STATUSES:
            raise RateLimitedError(status, f"HTTP error: {status} {response.reason_phrase}")
        if not response.is_success:
            raise UpstreamHTTPError(status, f"HTTP error: {status} {response.reason_phrase}")
        return response

    async def fetch_json(self, url: str, params: QueryParams | None = None) -> Any:
        """GET *url* and decode the body as JSON.

        Raises:
            ParseError: If the body is not valid JSON.
        """
        response = await self.fetch(url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"Invalid JSON from {url}") from exc

    async def fetch_text(self, url: str, params: QueryParams | None = None) -> str:
        """GET *url* and return the decoded body."""
        response = await self.fetch(url, params)
        return response.text

    async def fetch_text_with_final_url(self, url: str) -> tuple[str, str]:
        """GET *url* and return ``(body, final_url)`` after redirects."""
        response = await self.fetch(url)
        return response.text, str(response.url)

    async def fetch_cdx(self, params: QueryParams, lenient: bool = False) -> list[Any]:
        """Query the CDX API with ``output=json`` and return the decoded rows.

        An empty body yields ``[]``.  A body that is not a JSON array raises
        :class:`ParseError`, unless *lenient* is set, in which case ``[]`` is
        returned instead.

        Args:
            params: CDX query parameters, excluding ``output``.  A list of
                pairs may be used to repeat a key such as ``filter``.
            lenient: Treat an unparseable body as an empty result.
        """
        query = list(params.items()) if isinstance(params, dict) else list(params)
        query.append(("output", WB_DEFAULT_OUTPUT))

        text = await self.fetch_text(self.CDX_API, query)
        if not text.strip():
            return []

        try:
            rows = json.loads(text)
        except ValueError as exc:
            if lenient:
                return []
            raise ParseError("Failed to parse CDX response") from exc

        if not isinstance(rows, list):
            if lenient:
                return []
            raise ParseError("Failed to parse CDX response", {"type": type(rows).__name__})
        return rows

    # ------------------------------------------------------------------
    # URL builders
    # ------------------------------------------------------------------

    def get_snapshot_url(self, timestamp: str, url: str) -> str:
        """Return the playback address for a capture (with toolbar)."""
        return f"{self.SNAPSHOT_BASE}/{timestamp}/{url}"

    def get_raw_snapshot_url(self, timestamp: str, url: str) -> str:
        """Return the raw (``id_``) address for a capture, without the toolbar."""
        return f"{self.SNAPSHOT_BASE}/{timestamp}id_/{url}"
