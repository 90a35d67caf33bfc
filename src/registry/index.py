"""Sparse index layout and record parsing."""
from __future__ import annotations

import json
import logging
from itertools import product
from typing import Iterable, List, Optional

from constants import Constants
from versioning.models import IndexVersion, RegistryIndexEntry

logger = logging.getLogger(__name__)


def index_path(name: str) -> str:
    """Relative path of a crate's file in the sparse index.

    >>> index_path("serde")
    'se/rd/serde'
    """
    lowered = name.lower()
    if len(lowered) == 1:
        return f"1/{lowered}"
    if len(lowered) == 2:
        return f"2/{lowered}"
    if len(lowered) == 3:
        return f"3/{lowered[0]}/{lowered}"
    return f"{lowered[0:2]}/{lowered[2:4]}/{lowered}"


def index_url(name: str, base_url: Optional[str] = None) -> str:
    base = base_url or Constants.REGISTRY_INDEX_URL
    if not base.endswith("/"):
        base += "/"
    return base + index_path(name)


def _features(record: dict) -> tuple:
    names = list(record.get("features") or {})
    for extra in record.get("features2") or {}:
        if extra not in names:
            names.append(extra)
    return tuple(names)


def parse_index_lines(name: str, text: str, fetched_at: float = 0.0) -> RegistryIndexEntry:
    """Parse newline-delimited JSON records into a RegistryIndexEntry.

    Malformed lines are skipped. The canonical name is taken from the records
    when present.
    """
    versions: List[IndexVersion] = []
    canonical = name
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
            vers = record["vers"]
        except (ValueError, KeyError, TypeError):
            logger.debug("Skipping malformed index line %d for %s", lineno, name)
            continue
        canonical = record.get("name") or canonical
        versions.append(IndexVersion(
            version=str(vers),
            yanked=bool(record.get("yanked", False)),
            features=_features(record),
            rust_version=record.get("rust_version"),
        ))
    return RegistryIndexEntry(name=canonical, versions=tuple(versions), fetched_at=fetched_at)


def name_variants(name: str, limit: Optional[int] = None) -> Iterable[str]:
    """Alternative spellings of ``name`` swapping ``-`` and ``_``.

    The original name is not yielded. At most ``limit`` variants are produced
    (``Constants.FUZZY_NAME_MAX_VARIANTS`` by default).
    """
    limit = Constants.FUZZY_NAME_MAX_VARIANTS if limit is None else limit
    positions = [i for i, ch in enumerate(name) if ch in "-_"]
    if not positions or limit <= 0:
        return
    seen = {name}

    def _all_variants():
        # Uniform spellings first.
        yield name.replace("_", "-")
        yield name.replace("-", "_")
        for choice in product("-_", repeat=len(positions)):
            chars = list(name)
            for pos, sep in zip(positions, choice):
                chars[pos] = sep
            yield "".join(chars)

    for variant in _all_variants():
        if variant in seen:
            continue
        seen.add(variant)
        yield variant
        if len(seen) - 1 >= limit:
            return
