"""Dependency table edits on top of ManifestDocument.

Each function applies one logical edit to one table and returns whether the
document changed. Entries keep their surface form where possible: a scalar
stays a scalar until it needs more than a version, inline tables, dotted keys
and ``[dependencies.foo]`` sub-tables are edited key by key.
"""
from __future__ import annotations

import logging
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from common.errors import DependencyNotFound, InheritedDependencyConflict
from constants import Constants
from versioning.models import AddIntent

from .document import ManifestDocument, new_array, new_inline_table, unwrap
from .models import DependencyKind, DependencySpec, SourceKind, TableLocation

logger = logging.getLogger(__name__)

_SOURCE_KEYS = ("registry", "path", "git", "branch", "tag", "rev")


def _is_table_entry(entry: Any) -> bool:
    return isinstance(entry, dict)


def is_inherited(entry: Any) -> bool:
    """True for ``foo = { workspace = true }`` and its dotted / sub-table forms."""
    return _is_table_entry(entry) and unwrap(entry.get("workspace")) is True


def read_dependency(name: str, entry: Any, location: Optional[TableLocation] = None) -> DependencySpec:
    """Logical view of a dependency entry in any of its surface forms."""
    location = location or TableLocation()
    spec = DependencySpec(name=name, kind=location.kind, target=location.target)
    if not _is_table_entry(entry):
        spec.requirement = str(unwrap(entry))
        return spec

    value = unwrap(entry)
    version = value.get("version")
    spec.requirement = str(version) if isinstance(version, str) else None
    spec.features = [str(f) for f in value.get("features") or []]
    default_features = value.get("default-features", value.get("default_features"))
    spec.default_features = default_features if isinstance(default_features, bool) else None
    optional = value.get("optional")
    spec.optional = optional if isinstance(optional, bool) else None
    for key in ("package", "registry", "path", "git", "branch", "tag", "rev"):
        raw = value.get(key)
        if isinstance(raw, str):
            setattr(spec, key, raw)

    if value.get("workspace") is True:
        spec.source = SourceKind.WORKSPACE
    elif spec.path is not None:
        spec.source = SourceKind.PATH
    elif spec.git is not None:
        spec.source = SourceKind.GIT
    return spec


def dependency_locations(document: ManifestDocument) -> List[TableLocation]:
    """Every dependency table present in the document, in a stable order."""
    locations = []
    for table in Constants.DEPENDENCY_TABLES:
        if document.get_table((table,)) is not None:
            locations.append(TableLocation(kind=DependencyKind.from_table(table)))
    targets = document.get_table(("target",))
    if targets is not None:
        for target in list(targets.keys()):
            for table in Constants.DEPENDENCY_TABLES:
                if document.get_table(("target", target, table)) is not None:
                    locations.append(TableLocation(kind=DependencyKind.from_table(table), target=target))
    if document.get_table(("workspace", "dependencies")) is not None:
        locations.append(TableLocation(workspace=True))
    return locations


def iter_dependencies(
    document: ManifestDocument,
    kinds: Optional[Sequence[DependencyKind]] = None,
) -> Iterator[Tuple[TableLocation, DependencySpec]]:
    """Walk all dependency entries: plain, target-qualified and workspace tables."""
    for location in dependency_locations(document):
        if kinds is not None and not location.workspace and location.kind not in kinds:
            continue
        for name, entry in document.iter_entries(location.path):
            yield location, read_dependency(name, entry, location)


def _label(document: ManifestDocument) -> str:
    return document.path or "manifest"


def _wanted_fields(intent: AddIntent, requirement: Optional[str]) -> List[Tuple[str, Any]]:
    fields: List[Tuple[str, Any]] = []
    if requirement is not None:
        fields.append(("version", requirement))
    if intent.rename:
        fields.append(("package", intent.name))
    for key in _SOURCE_KEYS:
        value = getattr(intent, key)
        if value is not None:
            fields.append((key, value))
    if intent.default_features is False:
        fields.append(("default-features", False))
    if intent.features:
        fields.append(("features", list(dict.fromkeys(intent.features))))
    if intent.optional:
        fields.append(("optional", True))
    return fields


def _to_item(key: str, value: Any) -> Any:
    if key == "features":
        return new_array(value)
    return value


def add_dependency(
    document: ManifestDocument,
    intent: AddIntent,
    requirement: Optional[str],
) -> bool:
    """Insert or update the entry described by ``intent``.

    Raises:
        InheritedDependencyConflict: the member entry inherits from the
            workspace and the edit is not aimed at ``[workspace.dependencies]``.
    """
    path = intent.location.path
    key = intent.entry_name
    existing = document.get_entry(path, key)
    fields = _wanted_fields(intent, requirement)

    if existing is None:
        if len(fields) == 1 and fields[0][0] == "version":
            return document.insert_entry(path, key, requirement)
        return document.insert_entry(
            path, key, new_inline_table([(k, _to_item(k, v)) for k, v in fields])
        )

    if is_inherited(existing) and not intent.location.workspace:
        raise InheritedDependencyConflict(key, _label(document))

    if not _is_table_entry(existing):
        if len(fields) == 1 and fields[0][0] == "version":
            return document.replace_scalar(path, key, requirement)
        if not fields:
            return False
        current = str(unwrap(existing))
        if not any(k == "version" for k, _ in fields) and not (intent.git or intent.path):
            fields.insert(0, ("version", current))
        return document.replace_scalar(
            path, key, new_inline_table([(k, _to_item(k, v)) for k, v in fields])
        )

    return _update_table_entry(document, path, key, existing, intent, fields)


def _update_table_entry(
    document: ManifestDocument,
    path: Sequence[str],
    key: str,
    existing: Any,
    intent: AddIntent,
    fields: List[Tuple[str, Any]],
) -> bool:
    changed = False
    new_sources = {k for k, _ in fields if k in _SOURCE_KEYS}
    if new_sources & {"path", "git", "registry"}:
        for stale in _SOURCE_KEYS:
            if stale not in new_sources and stale in existing:
                changed |= document.remove_inline_key(path, key, stale)
        if intent.git and not any(k == "version" for k, _ in fields):
            changed |= document.remove_inline_key(path, key, "version")

    for field_name, value in fields:
        if field_name == "features":
            changed |= _merge_features(document, path, key, value)
        else:
            changed |= document.set_inline_key(path, key, field_name, value)

    if intent.default_features is True:
        changed |= document.remove_inline_key(path, key, "default-features")
        changed |= document.remove_inline_key(path, key, "default_features")
    if intent.optional is False:
        changed |= document.remove_inline_key(path, key, "optional")
    return changed


def _merge_features(document: ManifestDocument, path: Sequence[str], key: str, features: Sequence[str]) -> bool:
    """Append features not already listed, keeping the existing order."""
    entry = document.get_entry(path, key)
    current = entry.get("features") if _is_table_entry(entry) else None
    if current is None:
        if not features:
            return False
        return document.set_inline_key(path, key, "features", new_array(features))
    present = {str(f) for f in unwrap(current)}
    added = False
    for feature in features:
        if feature not in present:
            current.append(feature)
            present.add(feature)
            added = True
    return added


def set_features(
    document: ManifestDocument,
    name: str,
    location: TableLocation,
    features: Sequence[str],
) -> bool:
    """Merge ``features`` into an existing entry, touching nothing else."""
    path = location.path
    existing = document.get_entry(path, name)
    if existing is None:
        raise DependencyNotFound(name, location.display())
    if is_inherited(existing) and not location.workspace:
        raise InheritedDependencyConflict(name, _label(document))
    if not features:
        return False
    if not _is_table_entry(existing):
        return document.replace_scalar(path, name, new_inline_table([
            ("version", str(unwrap(existing))),
            ("features", new_array(list(dict.fromkeys(features)))),
        ]))
    return _merge_features(document, path, name, features)


def set_version(
    document: ManifestDocument,
    name: str,
    location: TableLocation,
    requirement: str,
) -> bool:
    """Rewrite only the version requirement of an existing entry."""
    path = location.path
    existing = document.get_entry(path, name)
    if existing is None:
        raise DependencyNotFound(name, location.display())
    if not _is_table_entry(existing):
        return document.replace_scalar(path, name, requirement)
    if is_inherited(existing) and not location.workspace:
        raise InheritedDependencyConflict(name, _label(document))
    return document.set_inline_key(path, name, "version", requirement)


def remove_dependency(document: ManifestDocument, name: str, location: TableLocation) -> DependencySpec:
    """Delete an entry and return what it declared.

    For an optional dependency, ``[features]`` references to it (``name``,
    ``dep:name``, ``name/feat``, ``name?/feat``) are removed as well.
    """
    path = location.path
    existing = document.get_entry(path, name)
    if existing is None:
        raise DependencyNotFound(name, location.display())
    spec = read_dependency(name, existing, location)
    document.remove_entry(path, name)
    if spec.optional and not location.workspace and not _still_declared(document, name):
        _remove_feature_references(document, name)
    return spec


def _still_declared(document: ManifestDocument, name: str) -> bool:
    return any(
        spec.name == name
        for location, spec in iter_dependencies(document)
        if not location.workspace
    )


def _references(value: str, name: str) -> bool:
    return (
        value == name
        or value == f"dep:{name}"
        or value.startswith(f"{name}/")
        or value.startswith(f"{name}?/")
    )


def _remove_feature_references(document: ManifestDocument, name: str) -> None:
    features = document.get_table(("features",))
    if features is None:
        return
    for feature in list(features.keys()):
        values = features[feature]
        if not hasattr(values, "__delitem__") or isinstance(values, (str, dict)):
            continue
        for index in range(len(values) - 1, -1, -1):
            if _references(str(values[index]), name):
                del values[index]
                logger.debug("Removed `%s` from feature `%s`", name, feature)


def package_version(document: ManifestDocument) -> Tuple[Optional[str], bool]:
    """Return ([package].version, inherited flag)."""
    raw = document.get_value(("package",), "version")
    if _is_table_entry(raw):
        return None, unwrap(raw.get("workspace")) is True
    if raw is None:
        return None, False
    return str(unwrap(raw)), False


def set_package_version(document: ManifestDocument, version: str) -> bool:
    return document.replace_scalar(("package",), "version", version)


def workspace_package_version(document: ManifestDocument) -> Optional[str]:
    raw = document.get_value(("workspace", "package"), "version")
    return str(unwrap(raw)) if raw is not None else None


def set_workspace_package_version(document: ManifestDocument, version: str) -> bool:
    return document.replace_scalar(("workspace", "package"), "version", version)


def rust_version(document: ManifestDocument, workspace_document: Optional[ManifestDocument] = None) -> Optional[str]:
    """Declared ``rust-version``, following ``rust-version.workspace = true``."""
    raw = document.get_value(("package",), "rust-version")
    if _is_table_entry(raw):
        if workspace_document is None or unwrap(raw.get("workspace")) is not True:
            return None
        raw = workspace_document.get_value(("workspace", "package"), "rust-version")
    return str(unwrap(raw)) if raw is not None else None
