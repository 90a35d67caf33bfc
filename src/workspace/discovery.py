"""Workspace discovery: find the root manifest and its members.

The upward search never leaves the project: it stops at the first directory
holding a VCS marker (``.git``, ``.hg``, ``.jj``) or at the filesystem root.
Discovery is read-only.
"""
from __future__ import annotations

import glob
import logging
import os
from typing import Dict, Iterable, List, Optional, Sequence

from constants import Constants
from common.errors import DiscoveryError
from common.logging_utils import extra_context, is_debug_enabled
from manifest.document import ManifestDocument, unwrap
from manifest.editor import iter_dependencies, package_version, rust_version, workspace_package_version

from .models import DependencyEdge, WorkspaceGraph, WorkspaceMember

logger = logging.getLogger(__name__)


def _has_vcs_marker(directory: str) -> bool:
    return any(os.path.exists(os.path.join(directory, marker)) for marker in Constants.VCS_MARKERS)


def find_manifest_upward(start: str) -> Optional[str]:
    """Nearest manifest at or above ``start`` within the project boundary."""
    directory = os.path.abspath(start)
    if os.path.isfile(directory):
        directory = os.path.dirname(directory)
    while True:
        candidate = os.path.join(directory, Constants.MANIFEST_FILE)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(directory)
        if _has_vcs_marker(directory) or parent == directory:
            return None
        directory = parent


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _is_under(path: str, parent: str) -> bool:
    try:
        return os.path.commonpath([path, parent]) == parent
    except ValueError:
        return False


def _member_dirs(root_doc: ManifestDocument, root_dir: str) -> List[str]:
    """Expand ``workspace.members`` globs minus ``workspace.exclude``."""
    workspace = unwrap(root_doc.get_table(("workspace",))) or {}
    excluded = [os.path.normpath(os.path.join(root_dir, p)) for p in _string_list(workspace.get("exclude"))]
    found: List[str] = []
    for pattern in _string_list(workspace.get("members")):
        matches = sorted(glob.glob(os.path.join(root_dir, pattern)))
        for match in matches:
            directory = os.path.normpath(match)
            if not os.path.isfile(os.path.join(directory, Constants.MANIFEST_FILE)):
                continue
            if any(_is_under(directory, ex) for ex in excluded):
                continue
            if directory not in found and directory != os.path.normpath(root_dir):
                found.append(directory)
    return found


def _includes(root_doc: ManifestDocument, root_dir: str, package_dir: str) -> bool:
    return os.path.normpath(package_dir) in _member_dirs(root_doc, root_dir)


def _find_workspace_root(start_manifest: str) -> Optional[str]:
    """Root manifest of the workspace containing ``start_manifest``, if any."""
    package_dir = os.path.dirname(start_manifest)
    directory = package_dir
    while True:
        if _has_vcs_marker(directory):
            return None
        parent = os.path.dirname(directory)
        if parent == directory:
            return None
        directory = parent
        candidate = os.path.join(directory, Constants.MANIFEST_FILE)
        if not os.path.isfile(candidate):
            continue
        doc = ManifestDocument.load(candidate)
        if doc.get_table(("workspace",)) is None:
            continue
        if _includes(doc, directory, package_dir):
            return candidate
        logger.debug("%s has a [workspace] that does not include %s", candidate, start_manifest)
        return None


def _load_member(path: str, doc: ManifestDocument, workspace_doc: Optional[ManifestDocument]) -> Optional[WorkspaceMember]:
    name = unwrap(doc.get_value(("package",), "name"))
    if not isinstance(name, str):
        return None
    version, inherited = package_version(doc)
    if inherited and workspace_doc is not None:
        version = workspace_package_version(workspace_doc)
    return WorkspaceMember(
        name=name,
        manifest_path=path,
        version=version,
        version_inherited=inherited,
        rust_version=rust_version(doc, workspace_doc),
    )


def _edges(
    documents: Dict[str, ManifestDocument],
    members: Sequence[WorkspaceMember],
    root_manifest: str,
) -> List[DependencyEdge]:
    by_dir = {os.path.normpath(m.directory): m for m in members}
    member_by_path = {m.manifest_path: m for m in members}
    edges: List[DependencyEdge] = []
    for manifest_path, doc in documents.items():
        owner = member_by_path.get(manifest_path)
        base = os.path.dirname(manifest_path)
        for location, spec in iter_dependencies(doc):
            if location.workspace and manifest_path != root_manifest:
                continue
            if not location.workspace and owner is None:
                continue
            if spec.path is None:
                continue
            target = by_dir.get(os.path.normpath(os.path.join(base, spec.path)))
            if target is None:
                continue
            edges.append(DependencyEdge(
                manifest_path=manifest_path,
                dependent=None if location.workspace else owner.name,
                dependency=target.name,
                key=spec.name,
                location=location,
                requirement=spec.requirement,
            ))
    return edges


def discover_workspace(start: Optional[str] = None, manifest_path: Optional[str] = None) -> WorkspaceGraph:
    """Locate the root manifest and members for ``start`` (or an explicit manifest).

    Raises:
        DiscoveryError: no manifest found, or the explicit path does not exist.
    """
    if manifest_path:
        start_manifest = os.path.abspath(manifest_path)
        if os.path.isdir(start_manifest):
            start_manifest = os.path.join(start_manifest, Constants.MANIFEST_FILE)
        if not os.path.isfile(start_manifest):
            raise DiscoveryError(f"manifest path `{manifest_path}` does not exist")
    else:
        start_dir = os.path.abspath(start or os.getcwd())
        start_manifest = find_manifest_upward(start_dir)
        if start_manifest is None:
            raise DiscoveryError(
                f"could not find `{Constants.MANIFEST_FILE}` in `{start_dir}` or any parent directory"
            )

    start_doc = ManifestDocument.load(start_manifest)
    if start_doc.get_table(("workspace",)) is not None:
        root_manifest = start_manifest
    else:
        root_manifest = _find_workspace_root(start_manifest) or start_manifest

    documents: Dict[str, ManifestDocument] = {start_manifest: start_doc}
    root_doc = documents.get(root_manifest) or ManifestDocument.load(root_manifest)
    documents[root_manifest] = root_doc
    root_dir = os.path.dirname(root_manifest)
    has_workspace = root_doc.get_table(("workspace",)) is not None
    workspace_doc = root_doc if has_workspace else None

    members: List[WorkspaceMember] = []
    root_member = _load_member(root_manifest, root_doc, workspace_doc)
    if root_member is not None:
        members.append(root_member)
    if has_workspace:
        for directory in _member_dirs(root_doc, root_dir):
            path = os.path.join(directory, Constants.MANIFEST_FILE)
            doc = documents.get(path) or ManifestDocument.load(path)
            documents[path] = doc
            member = _load_member(path, doc, workspace_doc)
            if member is None:
                logger.warning("Skipping %s: no [package].name", path)
                continue
            members.append(member)

    graph = WorkspaceGraph(
        root_manifest=root_manifest,
        start_manifest=start_manifest,
        is_virtual=root_member is None,
        members=members,
        edges=_edges(documents, members, root_manifest),
        workspace_version=workspace_package_version(root_doc) if has_workspace else None,
        has_workspace=has_workspace,
    )
    if is_debug_enabled(logger):
        logger.debug(
            "Discovered workspace",
            extra=extra_context(
                event="discovery",
                component="workspace",
                action="discover",
                target=root_manifest,
                count=len(members),
                virtual=graph.is_virtual,
            ),
        )
    return graph


def select_targets(
    graph: WorkspaceGraph,
    packages: Iterable[str] = (),
    workspace: bool = False,
    exclude: Iterable[str] = (),
) -> List[WorkspaceMember]:
    """Expand package selectors into concrete members.

    Explicit names must all exist. Without selectors the package owning the
    starting manifest is chosen, or every member for a virtual manifest.

    Raises:
        DiscoveryError: unknown package name, or nothing left to operate on.
    """
    names = graph.names
    packages = list(dict.fromkeys(packages))
    excluded = set(exclude)
    for name in excluded:
        if name not in names:
            logger.warning("Excluded package `%s` is not a workspace member", name)

    if packages:
        unknown = [p for p in packages if p not in names]
        if unknown:
            raise DiscoveryError(
                f"package(s) {', '.join(f'`{p}`' for p in unknown)} not found in workspace "
                f"`{graph.root_manifest}`"
            )
        selected = [names[p] for p in packages]
    elif workspace:
        selected = list(graph.members)
    else:
        owner = graph.member_for_manifest(graph.start_manifest)
        selected = [owner] if owner is not None else list(graph.members)

    selected = [m for m in selected if m.name not in excluded]
    if not selected:
        raise DiscoveryError("no packages selected")
    return selected
