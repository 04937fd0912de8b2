"""TTL-keyed JSON file cache.

The whole store lives in memory as a dict and is mirrored to a single JSON
document on disk.  Every mutation rewrites the full document; there is no
incremental write and no coordination between processes.  Expired entries
are dropped lazily on :meth:`Cache.get` and eagerly once at start-up.

Persisted shape::

    {
        "<cache key>": {"value": "<json string>", "written_at": 1700000000.0, "ttl": 3600},
        ...
    }

Deleting the file is a supported reset; it is recreated on the next
:meth:`Cache.initialize`.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable

from wayback_observatory.core.exceptions import CacheNotInitializedError

logger = logging.getLogger(__name__)


# TTLs in seconds per data class.
CACHE_TTL: dict[str, int] = {
    "availability": 3600,
    "snapshots": 86400,
    "snapshot_content": 604800,
    "cdx_queries": 43200,
    "bulk_check": 3600,
    "site_urls": 21600,
}


class Cache:
    """Persisted key/value store with per-entry TTL.

    Args:
        path: Location of the JSON document.
        default_ttl: TTL in seconds used when :meth:`set` receives none.
        clock: Wall-clock source in epoch seconds.  Injected in tests.
    """

    def __init__(
        self,
        path: Path | str,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path).expanduser()
        self._default_ttl = default_ttl
        self._clock = clock
        self._store: dict[str, dict[str, Any]] = {}
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load the persisted store and sweep expired entries.

        A missing file starts an empty cache; an unreadable or corrupt file
        is logged and replaced on the next write.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)

        self._store = {}
        if self._path.exists():
            try:
                loaded = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("cache: could not load %s (%s); starting empty", self._path, exc)
            else:
                if isinstance(loaded, dict):
                    self._store = loaded
                else:
                    logger.warning("cache: %s is not a JSON object; starting empty", self._path)

        self._initialized = True
        self.cleanup()

    def close(self) -> None:
        """Persist the store and mark the cache as closed."""
        if self._initialized:
            self._save()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise CacheNotInitializedError()

    def _save(self) -> None:
        try:
            self._path.write_text(json.dumps(self._store, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("cache: failed to save %s: %s", self._path, exc)

    def _is_expired(self, entry: dict[str, Any], now: float) -> bool:
        try:
            return float(entry["written_at"]) + float(entry["ttl"]) < now
        except (KeyError, TypeError, ValueError):
            # Entries with a broken envelope are treated as expired.
            return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or ``None``.

        Expired entries and entries whose value no longer deserializes are
        deleted as a side effect.
        """
        self._ensure_initialized()

        entry = self._store.get(key)
        if entry is None:
            return None

        if self._is_expired(entry, self._clock()):
            self.delete(key)
            return None

        try:
            return json.loads(entry["value"])
        except (TypeError, ValueError):
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* (any JSON-serializable object) under *key* and persist."""
        self._ensure_initialized()

        self._store[key] = {
            "value": json.dumps(value),
            "written_at": self._clock(),
            "ttl": ttl or self._default_ttl,
        }
        self._save()

    def delete(self, key: str) -> None:
        """Remove *key* (if present) and persist."""
        self._ensure_initialized()
        self._store.pop(key, None)
        self._save()

    def clear(self) -> None:
        """Remove every entry and persist the empty store."""
        self._ensure_initialized()
        self._store = {}
        self._save()

    def cleanup(self) -> int:
        """Drop all expired entries, persisting only if something was removed.

        Returns:
            Number of entries removed.
        """
        self._ensure_initialized()

        now = self._clock()
        expired = [key for key, entry in self._store.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._store[key]

        if expired:
            logger.debug("cache: swept %d expired entries", len(expired))
            self._save()
        return len(expired)

    @staticmethod
    def generate_key(prefix: str, params: dict[str, Any]) -> str:
        """Build a deterministic cache key from an operation prefix and parameters.

        ``None`` values are dropped and keys are sorted, so two logically
        identical parameter sets always produce the same key regardless of
        insertion order.

        Example::

            >>> Cache.generate_key("cdx", {"url": "example.com", "limit": 10, "to": None})
            'cdx:{"limit":10,"url":"example.com"}'
        """
        cleaned = {key: params[key] for key in sorted(params) if params[key] is not None}
        return f"{prefix}:{json.dumps(cleaned, sort_keys=True, separators=(',', ':'))}"
