"""Error taxonomy shared by discovery, registry, resolver, editor and orchestrator.

Every error carries an ``ErrorCategory`` so the CLI layer can choose an exit
code without inspecting concrete classes.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from constants import ExitCodes


class ErrorCategory(Enum):
    """Broad failure classes surfaced to the CLI."""

    RESOLUTION = "resolution"
    NETWORK = "network"
    VALIDATION = "validation"
    DISCOVERY = "discovery"
    WRITE = "write"

    @property
    def exit_code(self) -> ExitCodes:
        return {
            ErrorCategory.RESOLUTION: ExitCodes.RESOLUTION_ERROR,
            ErrorCategory.NETWORK: ExitCodes.CONNECTION_ERROR,
            ErrorCategory.VALIDATION: ExitCodes.VALIDATION_ERROR,
            ErrorCategory.DISCOVERY: ExitCodes.DISCOVERY_ERROR,
            ErrorCategory.WRITE: ExitCodes.WRITE_ERROR,
        }[self]


class CrateEditError(Exception):
    """Base class for all expected failures."""

    category = ErrorCategory.VALIDATION

    @property
    def kind(self) -> str:
        """Short taxonomy name used in user-facing messages."""
        return type(self).__name__


class DiscoveryError(CrateEditError):
    """No manifest found, or a package selector matched nothing."""

    category = ErrorCategory.DISCOVERY


class RegistryUnreachable(CrateEditError):
    """Network failure with no usable cache entry."""

    category = ErrorCategory.NETWORK


class PackageNotFound(CrateEditError):
    """The registry has no package with the requested name."""

    category = ErrorCategory.RESOLUTION

    def __init__(self, name: str):
        super().__init__(f"the crate `{name}` could not be found in registry index")
        self.name = name


class NoSatisfyingVersion(CrateEditError):
    """The requirement excludes every published (non-yanked) version."""

    category = ErrorCategory.RESOLUTION

    def __init__(self, name: str, requirement: Optional[str] = None, reason: Optional[str] = None):
        if reason is None:
            if requirement:
                reason = f"no published version of `{name}` matches `{requirement}`"
            else:
                reason = (
                    f"no available versions exist for `{name}`; either all were yanked "
                    "or only prerelease versions exist (try --allow-prerelease)"
                )
        super().__init__(reason)
        self.name = name
        self.requirement = requirement


class InvalidRequirementSyntax(CrateEditError):
    """A version or version requirement string could not be parsed."""

    category = ErrorCategory.RESOLUTION

    def __init__(self, text: str, detail: Optional[str] = None):
        message = f"invalid version requirement `{text}`"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.text = text


class VersionDowngrade(CrateEditError):
    """set-version asked for a version lower than the current one."""

    category = ErrorCategory.RESOLUTION

    def __init__(self, current: str, requested: str):
        super().__init__(f"cannot downgrade from {current} to {requested}")
        self.current = current
        self.requested = requested


class InheritedDependencyConflict(CrateEditError):
    """A member edit targets a dependency whose requirement lives in the workspace root."""

    def __init__(self, name: str, manifest: str):
        super().__init__(
            f"`{name}` is inherited from the workspace in {manifest}; "
            "edit the root table with --workspace-table instead"
        )
        self.name = name


class DependencyNotFound(CrateEditError):
    """rm asked to delete an entry that does not exist."""

    def __init__(self, name: str, table: str):
        super().__init__(f"the dependency `{name}` could not be found in `{table}`")
        self.name = name
        self.table = table


class DocumentParseError(CrateEditError):
    """A manifest could not be read as TOML."""


class ValidationError(CrateEditError):
    """An edited manifest failed the structural re-check."""


class WriteError(CrateEditError):
    """Disk I/O failed during commit."""

    category = ErrorCategory.WRITE


class PartialCommit(CrateEditError):
    """Commit stopped part way; some manifests were written and some were not."""

    category = ErrorCategory.WRITE

    def __init__(self, message: str, written: List[str], pending: List[str]):
        super().__init__(message)
        self.written = list(written)
        self.pending = list(pending)
