"""Workspace discovery and the member graph."""

from .discovery import discover_workspace, find_manifest_upward, select_targets
from .models import DependencyEdge, WorkspaceGraph, WorkspaceMember

__all__ = [
    "discover_workspace",
    "find_manifest_upward",
    "select_targets",
    "DependencyEdge",
    "WorkspaceGraph",
    "WorkspaceMember",
]
