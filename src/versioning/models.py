"""Data models for versioning and package resolution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import semantic_version

from manifest.models import DependencyKind, TableLocation


class ResolutionMode(Enum):
    """Resolution strategy derived from the edit intent."""
    LATEST = "latest"
    EXPLICIT = "explicit"
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"
    LITERAL = "literal"


@dataclass(frozen=True)
class IndexVersion:
    """One published version as listed by the registry index."""
    version: str
    yanked: bool = False
    features: Tuple[str, ...] = ()
    rust_version: Optional[str] = None

    @property
    def parsed(self) -> semantic_version.Version:
        return semantic_version.Version(self.version)


@dataclass(frozen=True)
class RegistryIndexEntry:
    """Immutable snapshot of a package's published versions."""
    name: str
    versions: Tuple[IndexVersion, ...]
    fetched_at: float = 0.0

    def candidates(self, include_yanked: bool = False) -> List[IndexVersion]:
        """Versions eligible for resolution, yanked ones dropped unless asked for."""
        return [v for v in self.versions if include_yanked or not v.yanked]

    def has_version(self, version: str) -> bool:
        return any(v.version == version for v in self.versions)


@dataclass(frozen=True)
class AddIntent:
    """Add (or update) a dependency entry."""
    name: str
    requirement: Optional[str] = None
    location: TableLocation = TableLocation()
    features: Tuple[str, ...] = ()
    default_features: Optional[bool] = None
    optional: Optional[bool] = None
    rename: Optional[str] = None
    registry: Optional[str] = None
    path: Optional[str] = None
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    allow_prerelease: bool = False

    @property
    def entry_name(self) -> str:
        """Key written into the table (the rename when one is given)."""
        return self.rename or self.name


@dataclass(frozen=True)
class RemoveIntent:
    """Remove a dependency entry."""
    name: str
    location: TableLocation = TableLocation()


@dataclass(frozen=True)
class UpgradeIntent:
    """Upgrade requirements, either everything or the named dependencies.

    ``targets`` maps a dependency name to an optional forced requirement.
    """
    targets: Tuple[Tuple[str, Optional[str]], ...] = ()
    incompatible: bool = False
    pinned: bool = False
    allow_prerelease: bool = False
    exclude: Tuple[str, ...] = ()
    kinds: Tuple[DependencyKind, ...] = (
        DependencyKind.NORMAL, DependencyKind.DEVELOPMENT, DependencyKind.BUILD
    )

    def selects(self, name: str) -> bool:
        if name in self.exclude:
            return False
        if not self.targets:
            return True
        return any(target == name for target, _ in self.targets)

    def forced_requirement(self, name: str) -> Optional[str]:
        for target, requirement in self.targets:
            if target == name:
                return requirement
        return None


@dataclass(frozen=True)
class SetVersionIntent:
    """Set a package's own version, literally or by bump level."""
    version: Optional[str] = None
    bump: Optional[str] = None
    allow_downgrade: bool = False


EditIntent = (AddIntent, RemoveIntent, UpgradeIntent, SetVersionIntent)


@dataclass
class Resolution:
    """Resolution outcome for one dependency."""
    name: str
    mode: ResolutionMode
    candidate: Optional[str] = None
    requirement: Optional[str] = None
    changed: bool = True
    warnings: List[str] = field(default_factory=list)
