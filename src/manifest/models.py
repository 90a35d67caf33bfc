"""Data models for manifest dependency tables."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class DependencyKind(Enum):
    """Dependency kinds and the table each one lives in."""
    NORMAL = "dependencies"
    DEVELOPMENT = "dev-dependencies"
    BUILD = "build-dependencies"

    @property
    def table(self) -> str:
        return self.value

    @classmethod
    def from_table(cls, table: str) -> "DependencyKind":
        # Cargo still accepts the legacy underscore spellings.
        return cls(table.replace("_", "-"))


class SourceKind(Enum):
    """Where a dependency comes from."""
    REGISTRY = "registry"
    PATH = "path"
    GIT = "git"
    WORKSPACE = "workspace"


@dataclass(frozen=True)
class TableLocation:
    """Address of one dependency table inside a manifest."""
    kind: DependencyKind = DependencyKind.NORMAL
    target: Optional[str] = None
    workspace: bool = False

    @property
    def path(self) -> Tuple[str, ...]:
        if self.workspace:
            return ("workspace", "dependencies")
        if self.target:
            return ("target", self.target, self.kind.table)
        return (self.kind.table,)

    def display(self) -> str:
        if self.workspace:
            return "workspace.dependencies"
        if self.target:
            return f"target.'{self.target}'.{self.kind.table}"
        return self.kind.table


@dataclass
class DependencySpec:
    """Logical view of one dependency entry, independent of its surface syntax."""
    name: str
    requirement: Optional[str] = None
    source: SourceKind = SourceKind.REGISTRY
    features: List[str] = field(default_factory=list)
    default_features: Optional[bool] = None
    optional: Optional[bool] = None
    kind: DependencyKind = DependencyKind.NORMAL
    target: Optional[str] = None
    package: Optional[str] = None  # renamed dependency: the registry name
    registry: Optional[str] = None
    path: Optional[str] = None
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None

    @property
    def inherited(self) -> bool:
        return self.source == SourceKind.WORKSPACE

    @property
    def registry_name(self) -> str:
        """Name to look up in the registry (honours ``package = ...`` renames)."""
        return self.package or self.name
