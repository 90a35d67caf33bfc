"""Sparse index client: versions per crate with caching and stale fallback."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Dict, Iterable, Optional

from constants import Constants
from common.errors import CrateEditError, PackageNotFound, RegistryUnreachable
from common.http_client import robust_get
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from versioning.models import RegistryIndexEntry

from .cache import CachedIndex, IndexCache
from .index import index_url, name_variants, parse_index_lines

logger = logging.getLogger(__name__)

_NOT_FOUND_STATUSES = (404, 410, 451)


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class RegistryClient:
    """Fetch published versions for crates from a sparse index.

    Entries resolved during this process are memoised, so each crate is looked
    up at most once per invocation.
    """

    def __init__(
        self,
        cache: Optional[IndexCache] = None,
        index_url: Optional[str] = None,
        offline: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ):
        self.cache = cache or IndexCache()
        self.index_url = index_url or Constants.REGISTRY_INDEX_URL
        self.offline = Constants.REGISTRY_OFFLINE if offline is None else offline
        self.max_workers = max_workers or Constants.REGISTRY_MAX_CONCURRENCY
        self._resolved: Dict[str, RegistryIndexEntry] = {}
        self._failures: Dict[str, CrateEditError] = {}
        self._memo_lock = threading.Lock()

    def fetch_versions(self, name: str, *, include_yanked: bool = False) -> RegistryIndexEntry:
        """Return the index entry for ``name``.

        Yanked versions are dropped unless ``include_yanked``.

        Raises:
            PackageNotFound: no crate with this name (or a ``-``/``_`` variant).
            RegistryUnreachable: network failure and nothing cached.
        """
        entry = self._lookup(name)
        if include_yanked:
            return entry
        return RegistryIndexEntry(
            name=entry.name,
            versions=tuple(entry.candidates()),
            fetched_at=entry.fetched_at,
        )

    def prefetch(self, names: Iterable[str]) -> Dict[str, Optional[CrateEditError]]:
        """Resolve several crates concurrently on a bounded thread pool.

        Failures are remembered and raised again by ``fetch_versions`` for the
        failing name; the mapping of name to failure (or None) is returned.
        """
        pending = sorted({n for n in names if n})
        outcome: Dict[str, Optional[CrateEditError]] = {}
        if not pending:
            return outcome
        workers = max(1, min(self.max_workers, len(pending)))
        with Timer() as t:
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self._lookup, name): name for name in pending}
                for future in concurrent.futures.as_completed(futures):
                    name = futures[future]
                    try:
                        future.result()
                        outcome[name] = None
                    except CrateEditError as exc:
                        outcome[name] = exc
        if is_debug_enabled(logger):
            logger.debug(
                "Prefetched registry entries",
                extra=extra_context(
                    event="prefetch",
                    component="registry_client",
                    action="prefetch",
                    count=len(pending),
                    failures=sum(1 for exc in outcome.values() if exc is not None),
                    duration_ms=t.duration_ms(),
                ),
            )
        return outcome

    def _lookup(self, name: str) -> RegistryIndexEntry:
        key = name.lower()
        with self._memo_lock:
            if key in self._resolved:
                return self._resolved[key]
            if key in self._failures:
                raise self._failures[key]
        try:
            entry = self._resolve(name)
        except CrateEditError as exc:
            with self._memo_lock:
                self._failures[key] = exc
            raise
        with self._memo_lock:
            self._resolved[key] = entry
        return entry

    def _resolve(self, name: str) -> RegistryIndexEntry:
        entry = self._fetch_one(name)
        if entry is not None:
            return entry
        for variant in name_variants(name):
            entry = self._fetch_one(variant)
            if entry is not None:
                logger.warning(
                    "Crate `%s` not found, using `%s` instead", name, entry.name
                )
                return entry
        if self.offline:
            raise RegistryUnreachable(
                f"offline mode: `{name}` is not in the local registry cache"
            )
        raise PackageNotFound(name)

    def _fetch_one(self, name: str) -> Optional[RegistryIndexEntry]:
        """Fetch one exact name; None when the index does not know it."""
        with self.cache.lock_for(name):
            cached = self.cache.get(name)
            if self.offline:
                return cached.entry if cached is not None else None
            if cached is not None and cached.is_fresh(self.cache.ttl):
                logger.debug("Using cached index entry for %s", name)
                return cached.entry
            return self._fetch_remote(name, cached)

    def _fetch_remote(self, name: str, cached: Optional[CachedIndex]) -> Optional[RegistryIndexEntry]:
        url = index_url(name, self.index_url)
        headers = cached.conditional_headers() if cached is not None else {}
        status, response_headers, text = robust_get(url, headers=headers)

        if status == 200:
            now = time.time()
            entry = parse_index_lines(name, text, fetched_at=now)
            if not entry.versions:
                return None
            self.cache.put(CachedIndex(
                entry=entry,
                fetched_at=now,
                etag=_header(response_headers, "ETag"),
                last_modified=_header(response_headers, "Last-Modified"),
            ))
            return entry
        if status == 304 and cached is not None:
            return self.cache.touch(cached).entry
        if status in _NOT_FOUND_STATUSES:
            return None

        reason = text if status == 0 else f"HTTP {status}"
        if cached is not None:
            logger.warning(
                "Registry unreachable for `%s` (%s); using cached index from %d seconds ago",
                name, reason, int(cached.age()),
            )
            return cached.entry
        if is_debug_enabled(logger):
            logger.debug(
                "Registry request failed",
                extra=extra_context(
                    event="http_error",
                    component="registry_client",
                    action="fetch",
                    outcome="unreachable",
                    status_code=status,
                    target=safe_url(url),
                ),
            )
        raise RegistryUnreachable(f"failed to fetch `{name}` from {safe_url(url)}: {reason}")


_default_client: Optional[RegistryClient] = None
_default_client_lock = threading.Lock()


def get_default_client() -> RegistryClient:
    """Process-wide client, created lazily from the current Constants."""
    global _default_client  # pylint: disable=global-statement
    with _default_client_lock:
        if _default_client is None:
            _default_client = RegistryClient()
        return _default_client


def reset_default_client() -> None:
    global _default_client  # pylint: disable=global-statement
    with _default_client_lock:
        _default_client = None
