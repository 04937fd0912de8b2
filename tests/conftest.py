"""Shared pytest fixtures for Wayback Observatory tests.

Fixture summary
---------------
clock           FakeClock shared by the rate limiter and the cache.
recorded_sleep  RecordingSleep that advances ``clock`` instead of waiting.
settings        Settings pointing the cache at a per-test temporary file.
cache           Initialized Cache on ``settings.cache_path``.
wayback_client  Initialized WaybackClient wired to the fixtures above.

No test touches the network: upstream calls are intercepted with ``respx``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from wayback_observatory.config.settings import Settings
from wayback_observatory.core.cache import Cache
from wayback_observatory.core.rate_limiter import RateLimiter
from wayback_observatory.wayback.client import WaybackClient


# ---------------------------------------------------------------------------
# Time doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock, usable as both monotonic and wall time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records each duration and advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(cache_path=tmp_path / "cache.json", max_retries=3, http_timeout=5.0)


@pytest.fixture
def cache(settings: Settings, clock: FakeClock) -> Cache:
    store = Cache(settings.cache_path, default_ttl=settings.cache_ttl, clock=clock)
    store.initialize()
    return store


@pytest_asyncio.fixture
async def wayback_client(
    settings: Settings,
    cache: Cache,
    clock: FakeClock,
    recorded_sleep: RecordingSleep,
) -> AsyncGenerator[WaybackClient, None]:
    """WaybackClient with a fake clock, a recording sleep and a temp cache."""
    limiter = RateLimiter(clock=clock, sleep=recorded_sleep)
    client = WaybackClient(
        settings=settings,
        rate_limiter=limiter,
        cache=cache,
        sleep=recorded_sleep,
    )
    await client.initialize()
    yield client
    await client.close()
