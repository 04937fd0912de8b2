"""Application-wide exception hierarchy for Wayback Observatory.

All custom exceptions subclass ``WaybackError``.  Every class carries a
stable ``code`` string which the tool boundary serializes as
``{"code", "message", "details"}``; no failure crosses that boundary as an
opaque exception.

Hierarchy::

    WaybackError                    UNKNOWN_ERROR
    ├── NotFoundError               NOT_FOUND
    ├── InvalidInputError           INVALID_INPUT
    ├── UpstreamHTTPError           API_ERROR       (status_code: int)
    │   └── RateLimitedError        RATE_LIMITED    (HTTP 429 / 503)
    ├── ParseError                  PARSE_ERROR
    ├── FetchError                  FETCH_FAILED
    │   └── RequestTimeoutError     TIMEOUT
    └── CacheNotInitializedError    CACHE_NOT_INITIALIZED

Only :meth:`~wayback_observatory.wayback.client.WaybackClient.fetch` turns
httpx outcomes into this taxonomy, so retry logic can dispatch on exception
type instead of inspecting error payloads.
"""

from __future__ import annotations

from typing import Any


class WaybackError(Exception):
    """Base class for all Wayback Observatory exceptions.

    Args:
        message: Human-readable description of the failure.
        details: Optional structured context (status codes, offending
            parameters) forwarded to the caller.
    """

    code: str = "UNKNOWN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{code, message, details?}`` representation."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(WaybackError):
    """Raised when the requested resource is not archived upstream.

    Terminal: never retried.
    """

    code = "NOT_FOUND"


class InvalidInputError(WaybackError):
    """Raised when a URL, timestamp, or parameter is rejected before any upstream call."""

    code = "INVALID_INPUT"


# ---------------------------------------------------------------------------
# Upstream HTTP errors
# ---------------------------------------------------------------------------


class UpstreamHTTPError(WaybackError):
    """Raised for any non-2xx response from a Wayback Machine endpoint.

    Args:
        status_code: HTTP status returned by the upstream.
        message: Optional description; defaults to ``"HTTP error: <status>"``.
        details: Extra context merged with ``{"status": status_code}``.
    """

    code = "API_ERROR"

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged: dict[str, Any] = {"status": status_code}
        if details:
            merged.update(details)
        super().__init__(message or f"HTTP error: {status_code}", merged)
        self.status_code = status_code


class RateLimitedError(UpstreamHTTPError):
    """Raised for HTTP 429 (rate limited) and 503 (unavailable).

    These are retried with the heavier backoff schedule and only surface
    once the retry budget is exhausted.
    """

    code = "RATE_LIMITED"


# ---------------------------------------------------------------------------
# Payload and transport errors
# ---------------------------------------------------------------------------


class ParseError(WaybackError):
    """Raised when an upstream payload does not have the expected JSON/tabular shape."""

    code = "PARSE_ERROR"


class FetchError(WaybackError):
    """Raised on transport failures (DNS, connection reset, TLS, ...)."""

    code = "FETCH_FAILED"


class RequestTimeoutError(FetchError):
    """Raised when an upstream request times out."""

    code = "TIMEOUT"


# ---------------------------------------------------------------------------
# Local state errors
# ---------------------------------------------------------------------------


class CacheNotInitializedError(WaybackError):
    """Raised when the cache is used before :meth:`Cache.initialize` was called."""

    code = "CACHE_NOT_INITIALIZED"

    def __init__(self) -> None:
        super().__init__("Cache not initialized. Call initialize() first.")
