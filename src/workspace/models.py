"""Workspace graph data models."""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from manifest.models import TableLocation


@dataclass
class WorkspaceMember:
    """One package in the workspace."""
    name: str
    manifest_path: str
    version: Optional[str] = None
    version_inherited: bool = False
    rust_version: Optional[str] = None

    @property
    def directory(self) -> str:
        return os.path.dirname(self.manifest_path)


@dataclass
class DependencyEdge:
    """A path dependency on another member.

    ``dependent`` is None when the entry lives in ``[workspace.dependencies]``
    of the root manifest.
    """
    manifest_path: str
    dependent: Optional[str]
    dependency: str
    key: str
    location: TableLocation
    requirement: Optional[str] = None


@dataclass
class WorkspaceGraph:
    """Root manifest, ordered members and the edges between them."""
    root_manifest: str
    start_manifest: str
    is_virtual: bool = False
    members: List[WorkspaceMember] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    workspace_version: Optional[str] = None
    has_workspace: bool = False

    @property
    def names(self) -> Dict[str, WorkspaceMember]:
        return {m.name: m for m in self.members}

    def get(self, name: str) -> Optional[WorkspaceMember]:
        return self.names.get(name)

    def member_for_manifest(self, manifest_path: str) -> Optional[WorkspaceMember]:
        for member in self.members:
            if member.manifest_path == manifest_path:
                return member
        return None

    def dependents_of(self, name: str) -> List[DependencyEdge]:
        return [edge for edge in self.edges if edge.dependency == name]
