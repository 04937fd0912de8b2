"""In-process sliding window rate limiter for Wayback Machine endpoints.

Each endpoint category keeps an ordered deque of admission timestamps.  On
every :meth:`RateLimiter.acquire` the deque is pruned to the current window;
if the category is still full the caller sleeps until the oldest admission
leaves the window and then re-checks.  Callers are delayed, never rejected.

State is process-local: there is no cross-process coordination and no
locking, since all callers share one event loop and only interleave at
``await`` points.

Typical usage::

    limiter = RateLimiter()
    await limiter.acquire("cdx")
    response = await http_client.get(CDX_URL, params=params)
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitConfig:
    """Admission budget for one endpoint category.

    Attributes:
        max_requests: Maximum admissions within any sliding window.
        window_seconds: Length of the sliding window in seconds.
    """

    max_requests: int
    window_seconds: float = 60.0


# Conservative limits for archive.org: CDX queries are heavier than
# availability lookups, full page fetches heavier still.
CATEGORY_LIMITS: dict[str, RateLimitConfig] = {
    "availability": RateLimitConfig(max_requests=15),
    "cdx": RateLimitConfig(max_requests=10),
    "content": RateLimitConfig(max_requests=5),
    "default": RateLimitConfig(max_requests=10),
}


def classify_endpoint(endpoint: str) -> str:
    """Map an endpoint identifier or URL to its rate-limit category.

    Args:
        endpoint: Endpoint label (``"available"``, ``"cdx"``, ``"web/content"``)
            or a full upstream URL.

    Returns:
        One of ``"availability"``, ``"cdx"``, ``"content"``, ``"default"``.
    """
    if "available" in endpoint:
        return "availability"
    if "cdx" in endpoint:
        return "cdx"
    if "web/" in endpoint:
        return "content"
    return "default"


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


@dataclass
class RateLimiter:
    """Sliding window limiter partitioned by endpoint category.

    Attributes:
        limits: Per-category budgets.  Unknown categories use ``"default"``.
        clock: Monotonic time source in seconds.  Injected in tests.
        sleep: Awaitable sleep used while waiting for a slot.  Injected in tests.
    """

    limits: dict[str, RateLimitConfig] = field(default_factory=lambda: dict(CATEGORY_LIMITS))
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _windows: dict[str, deque[float]] = field(default_factory=dict, init=False, repr=False)

    def _config(self, category: str) -> RateLimitConfig:
        return self.limits.get(category) or self.limits["default"]

    def _prune(self, category: str, now: float) -> deque[float]:
        """Drop admissions older than the window and return the category's deque."""
        window = self._windows.setdefault(category, deque())
        cutoff = now - self._config(category).window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window

    async def acquire(self, endpoint: str) -> None:
        """Wait until *endpoint*'s category has capacity, then record an admission.

        Re-checks after every sleep: another admission may have aged out in
        the meantime, or a concurrent caller may have taken the freed slot.

        Args:
            endpoint: Endpoint label or URL; see :func:`classify_endpoint`.
        """
        category = classify_endpoint(endpoint)
        config = self._config(category)

        while True:
            now = self.clock()
            window = self._prune(category, now)
            if len(window) < config.max_requests:
                window.append(now)
                return

            wait = window[0] + config.window_seconds - now
            logger.info(
                "Rate limit reached for %s. Waiting %ds...",
                category,
                math.ceil(wait),
                extra={"category": category, "wait_seconds": wait},
            )
            await self.sleep(wait)

    def get_remaining_requests(self, endpoint: str) -> int:
        """Return how many admissions *endpoint*'s category can take right now."""
        category = classify_endpoint(endpoint)
        window = self._prune(category, self.clock())
        return max(0, self._config(category).max_requests - len(window))

    def get_reset_time(self, endpoint: str) -> float | None:
        """Return the clock time at which the oldest admission leaves the window.

        Returns:
            A value comparable with :attr:`clock`, or ``None`` if the category
            has no recorded admissions.
        """
        category = classify_endpoint(endpoint)
        window = self._windows.get(category)
        if not window:
            return None
        return window[0] + self._config(category).window_seconds
