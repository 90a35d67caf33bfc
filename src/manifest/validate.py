"""Post-edit structural checks run before anything is written."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from common.errors import ValidationError
from constants import Constants

logger = logging.getLogger(__name__)


def _normalize(name: str) -> str:
    return name.lower().replace("_", "-")


def _dependency_tables(data: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    for table in Constants.DEPENDENCY_TABLES:
        if isinstance(data.get(table), dict):
            yield table, data[table]
    targets = data.get("target")
    if isinstance(targets, dict):
        for target, tables in targets.items():
            if not isinstance(tables, dict):
                continue
            for table in Constants.DEPENDENCY_TABLES:
                if isinstance(tables.get(table), dict):
                    yield f"target.'{target}'.{table}", tables[table]
    workspace = data.get("workspace")
    if isinstance(workspace, dict) and isinstance(workspace.get("dependencies"), dict):
        yield "workspace.dependencies", workspace["dependencies"]


def find_duplicates(data: Dict[str, Any]) -> Set[Tuple[str, str]]:
    """(table, package) pairs declared twice under spellings Cargo treats alike.

    Keys that rename through ``package = ...`` are intentional aliases and are
    not counted.
    """
    duplicates = set()
    for table, entries in _dependency_tables(data):
        seen: Dict[str, str] = {}
        for key, entry in entries.items():
            if isinstance(entry, dict) and isinstance(entry.get("package"), str):
                continue
            normalized = _normalize(key)
            if normalized in seen:
                duplicates.add((table, normalized))
            else:
                seen[normalized] = key
    return duplicates


def parse_text(text: str, label: str = "manifest") -> Dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(f"{label} is no longer valid TOML after editing: {exc}") from exc


def validate_manifest(text: str, original_text: Optional[str] = None, label: str = "manifest") -> Dict[str, Any]:
    """Re-parse edited text and reject newly introduced duplicate entries.

    Duplicates already present in ``original_text`` are tolerated.

    Raises:
        ValidationError: invalid TOML, or a dependency declared twice.
    """
    data = parse_text(text, label)
    introduced = find_duplicates(data)
    if introduced and original_text is not None:
        try:
            introduced -= find_duplicates(tomllib.loads(original_text))
        except tomllib.TOMLDecodeError as exc:
            logger.debug("Original %s did not parse, checking all duplicates: %s", label, exc)
    if introduced:
        details: List[str] = [f"`{pkg}` in [{table}]" for table, pkg in sorted(introduced)]
        raise ValidationError(f"duplicate dependency entries in {label}: {', '.join(details)}")
    logger.debug("Validated %s", label)
    return data
