"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
All tunables are accessed exclusively through this module; never call
``os.getenv`` directly elsewhere in the codebase.

Usage::

    from wayback_observatory.config.settings import get_settings

    settings = get_settings()
    cache_path = settings.cache_path
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_path() -> Path:
    return Path.home() / ".wayback-observatory" / "cache.json"


class Settings(BaseSettings):
    """Application-wide configuration backed by ``WAYBACK_*`` environment variables.

    Every field has a default, so the application starts without any
    environment at all.  Values may also be supplied through a ``.env`` file
    in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="WAYBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    cache_path: Path = Field(default_factory=_default_cache_path)
    """Location of the persisted JSON cache document.

    Deleting the file is a supported way to reset the cache; it is recreated
    on the next start-up.
    """

    cache_ttl: int = Field(default=3600, ge=1)
    """TTL in seconds applied when a cache entry is written without one."""

    # ------------------------------------------------------------------
    # Upstream HTTP
    # ------------------------------------------------------------------

    user_agent: str = "WaybackObservatory/1.0 (SEO analysis; research use)"
    """``User-Agent`` header sent with every Wayback Machine request."""

    http_timeout: float = Field(default=30.0, gt=0)
    """Per-request timeout in seconds for the shared ``httpx.AsyncClient``."""

    max_retries: int = Field(default=3, ge=1)
    """Attempt budget for a single upstream operation (see ``WaybackClient.with_retry``)."""

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Wayback Observatory"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    host: str = "127.0.0.1"
    """Bind address used by the ``wayback-observatory`` console script."""

    port: int = 8000
    """Bind port used by the ``wayback-observatory`` console script."""

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value!r}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()
