"""Configuration package for Wayback Observatory.

Re-exports the settings symbols so that callers can write::

    from wayback_observatory.config import get_settings
"""

from __future__ import annotations

from wayback_observatory.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
