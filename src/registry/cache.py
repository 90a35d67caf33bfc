"""On-disk TTL cache for sparse index entries.

One JSON file per crate under ``Constants.REGISTRY_CACHE_DIR``. Files are
replaced atomically; writers of the same name within this process are
serialised by a per-name lock.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from constants import Constants
from common.fs import atomic_write_text, read_text
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import IndexVersion, RegistryIndexEntry

from .index import index_path

logger = logging.getLogger(__name__)


@dataclass
class CachedIndex:
    """A cached sparse index entry plus the validators for conditional requests."""

    entry: RegistryIndexEntry
    fetched_at: float = field(default_factory=time.time)
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.fetched_at

    def is_fresh(self, ttl: int, now: Optional[float] = None) -> bool:
        """Check if this entry is younger than ``ttl`` seconds."""
        return self.age(now) < ttl

    def conditional_headers(self) -> Dict[str, str]:
        headers = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


def _encode(cached: CachedIndex) -> str:
    return json.dumps({
        "name": cached.entry.name,
        "fetched_at": cached.fetched_at,
        "etag": cached.etag,
        "last_modified": cached.last_modified,
        "versions": [
            {
                "vers": v.version,
                "yanked": v.yanked,
                "features": list(v.features),
                "rust_version": v.rust_version,
            }
            for v in cached.entry.versions
        ],
    })


def _decode(text: str) -> CachedIndex:
    data = json.loads(text)
    if not isinstance(data.get("name"), str):
        raise TypeError("cache entry has no crate name")
    fetched_at = float(data["fetched_at"])
    versions = tuple(
        IndexVersion(
            version=str(v["vers"]),
            yanked=bool(v.get("yanked", False)),
            features=tuple(v.get("features") or ()),
            rust_version=v.get("rust_version"),
        )
        for v in data["versions"]
    )
    return CachedIndex(
        entry=RegistryIndexEntry(name=data["name"], versions=versions, fetched_at=fetched_at),
        fetched_at=fetched_at,
        etag=data.get("etag"),
        last_modified=data.get("last_modified"),
    )


class IndexCache:
    """Persistent cache keyed by crate name."""

    def __init__(self, root: Optional[str] = None, ttl: Optional[int] = None):
        """Initialize the cache.

        Args:
            root: Cache directory (defaults to ``Constants.REGISTRY_CACHE_DIR``).
            ttl: Freshness window in seconds (defaults to ``Constants.REGISTRY_CACHE_TTL_SEC``).
        """
        self.root = root or Constants.REGISTRY_CACHE_DIR
        self.ttl = Constants.REGISTRY_CACHE_TTL_SEC if ttl is None else ttl
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, name: str) -> str:
        return os.path.join(self.root, *index_path(name).split("/")) + ".json"

    def lock_for(self, name: str) -> threading.Lock:
        """Per-name lock serialising fetch-and-store for one crate."""
        key = name.lower()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get(self, name: str) -> Optional[CachedIndex]:
        """Return the cached entry regardless of age, or None.

        Missing, unreadable and garbled files all count as absent.
        """
        path = self.path_for(name)
        try:
            text = read_text(path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("Cannot read cache file %s: %s", path, exc)
            return None
        except UnicodeDecodeError as exc:
            logger.debug("Discarding undecodable cache file %s: %s", path, exc)
            return None
        try:
            cached = _decode(text)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            if is_debug_enabled(logger):
                logger.debug(
                    "Discarding garbled cache entry",
                    extra=extra_context(
                        event="anomaly",
                        component="cache",
                        action="read",
                        outcome="garbled",
                        target=name,
                        error=str(exc),
                    ),
                )
            return None
        if cached.entry.name.lower() != name.lower():
            return None
        return cached

    def get_fresh(self, name: str, now: Optional[float] = None) -> Optional[CachedIndex]:
        cached = self.get(name)
        if cached is None or not cached.is_fresh(self.ttl, now):
            return None
        return cached

    def put(self, cached: CachedIndex) -> None:
        """Store ``cached`` under its entry name."""
        path = self.path_for(cached.entry.name)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            atomic_write_text(path, _encode(cached))
        except OSError as exc:
            logger.warning("Could not write registry cache %s: %s", path, exc)
            return
        if is_debug_enabled(logger):
            logger.debug(
                "Cached index entry",
                extra=extra_context(
                    event="cache_store",
                    component="cache",
                    action="write",
                    target=cached.entry.name,
                    count=len(cached.entry.versions),
                ),
            )

    def touch(self, cached: CachedIndex, now: Optional[float] = None) -> CachedIndex:
        """Refresh the timestamp of an entry after a ``304 Not Modified``."""
        stamp = time.time() if now is None else now
        refreshed = CachedIndex(
            entry=RegistryIndexEntry(
                name=cached.entry.name, versions=cached.entry.versions, fetched_at=stamp
            ),
            fetched_at=stamp,
            etag=cached.etag,
            last_modified=cached.last_modified,
        )
        self.put(refreshed)
        return refreshed
