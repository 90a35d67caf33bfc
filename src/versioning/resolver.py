"""Version resolution: turn an edit intent into the requirement string to write.

Everything here is a pure function of its arguments; registry access happens
before these are called.
"""

from dataclasses import dataclass
from typing import List, Optional

import semantic_version

from common.errors import NoSatisfyingVersion, ValidationError, VersionDowngrade
from constants import Constants
from .models import (
    AddIntent,
    IndexVersion,
    RegistryIndexEntry,
    Resolution,
    ResolutionMode,
    SetVersionIntent,
    UpgradeIntent,
)
from .requirement import (
    UnsupportedRequirement,
    VersionReq,
    bump_version,
    format_requirement,
    parse_version,
    upgrade_requirement,
)


@dataclass(frozen=True)
class ResolverPolicy:
    """Tunables that shape candidate selection and formatting."""
    pin_style: str = "caret"
    prerelease_follows_requirement: bool = True
    rust_version: Optional[str] = None

    @classmethod
    def from_constants(cls, rust_version: Optional[str] = None) -> "ResolverPolicy":
        return cls(
            pin_style=Constants.PIN_STYLE,
            prerelease_follows_requirement=Constants.PRERELEASE_FOLLOWS_REQUIREMENT,
            rust_version=rust_version if Constants.RESPECT_RUST_VERSION else None,
        )


def _coerce(text: Optional[str]) -> Optional[semantic_version.Version]:
    if not text:
        return None
    try:
        return semantic_version.Version.coerce(text.strip())
    except ValueError:
        return None


def _rust_compatible(candidate: IndexVersion, rust_version: Optional[str]) -> bool:
    limit = _coerce(rust_version)
    needed = _coerce(candidate.rust_version)
    if limit is None or needed is None:
        return True
    return needed <= limit


def select_candidate(
    entry: RegistryIndexEntry,
    *,
    requirement: Optional[VersionReq] = None,
    allow_prerelease: bool = False,
    rust_version: Optional[str] = None,
    include_yanked: bool = False,
) -> Optional[IndexVersion]:
    """Pick the highest eligible version, or None.

    Yanked versions are skipped unless ``include_yanked``; pre-releases are
    skipped unless ``allow_prerelease``.
    """
    best: Optional[IndexVersion] = None
    best_parsed: Optional[semantic_version.Version] = None
    for candidate in entry.candidates(include_yanked=include_yanked):
        try:
            parsed = candidate.parsed
        except ValueError:
            continue  # Skip invalid versions
        if parsed.prerelease and not allow_prerelease:
            continue
        if requirement is not None and not requirement.matches(parsed):
            continue
        if not _rust_compatible(candidate, rust_version):
            continue
        if best_parsed is None or parsed > best_parsed:
            best, best_parsed = candidate, parsed
    return best


def matching_versions(entry: RegistryIndexEntry, requirement: VersionReq) -> List[IndexVersion]:
    """Non-yanked published versions satisfying ``requirement``."""
    matched = []
    for candidate in entry.candidates():
        try:
            if requirement.matches(candidate.parsed):
                matched.append(candidate)
        except ValueError:
            continue
    return matched


def resolve_add(
    intent: AddIntent,
    entry: Optional[RegistryIndexEntry],
    policy: ResolverPolicy,
) -> Resolution:
    """Resolve an add.

    An explicit requirement is validated and kept verbatim; without one the
    latest stable (or pre-release, when allowed) version is formatted in the
    active pin style.
    """
    if intent.requirement:
        req = VersionReq.parse(intent.requirement)
        resolution = Resolution(
            name=intent.name,
            mode=ResolutionMode.EXPLICIT,
            requirement=intent.requirement,
        )
        if entry is not None:
            best = select_candidate(
                entry,
                requirement=req,
                allow_prerelease=True,
                rust_version=policy.rust_version,
            )
            if best is None:
                resolution.warnings.append(
                    f"no published version of `{intent.name}` satisfies `{intent.requirement}`"
                )
            else:
                resolution.candidate = best.version
        return resolution

    if entry is None:
        raise NoSatisfyingVersion(intent.name)
    best = select_candidate(
        entry,
        allow_prerelease=intent.allow_prerelease,
        rust_version=policy.rust_version,
    )
    if best is None:
        raise NoSatisfyingVersion(intent.name)
    return Resolution(
        name=intent.name,
        mode=ResolutionMode.LATEST,
        candidate=best.version,
        requirement=format_requirement(best.version, policy.pin_style),
    )


def resolve_upgrade(
    name: str,
    current: Optional[str],
    entry: Optional[RegistryIndexEntry],
    intent: UpgradeIntent,
    policy: ResolverPolicy,
) -> Resolution:
    """Resolve an upgrade of one dependency requirement.

    Compatible mode stays inside the existing requirement; incompatible mode
    moves to the latest release and widens the requirement. Exact pins are
    left alone unless ``intent.pinned``.
    """
    mode = ResolutionMode.INCOMPATIBLE if intent.incompatible else ResolutionMode.COMPATIBLE

    forced = intent.forced_requirement(name)
    if forced:
        VersionReq.parse(forced)
        return Resolution(
            name=name,
            mode=ResolutionMode.EXPLICIT,
            requirement=forced,
            changed=forced != current,
        )

    if current is None:
        return Resolution(name=name, mode=mode, requirement=None, changed=False,
                          warnings=["no version requirement to upgrade"])

    req = VersionReq.parse(current)
    if req.is_exact_pin and not intent.pinned:
        return Resolution(name=name, mode=mode, requirement=current, changed=False,
                          warnings=["pinned; use --pinned to upgrade"])
    if entry is None:
        raise NoSatisfyingVersion(name, current)

    allow_prerelease = intent.allow_prerelease or (
        policy.prerelease_follows_requirement and req.has_prerelease
    )
    # Exact pins are searched with caret semantics (`=1.2.3` -> `1.2.3`).
    search = VersionReq.parse(current.strip().lstrip("=").strip()) if req.is_exact_pin else req
    compatible = select_candidate(
        entry,
        requirement=search,
        allow_prerelease=allow_prerelease,
        rust_version=policy.rust_version,
    )

    target = compatible
    if intent.incompatible:
        latest = select_candidate(
            entry,
            allow_prerelease=allow_prerelease,
            rust_version=policy.rust_version,
        )
        if latest is None:
            raise NoSatisfyingVersion(name)
        lower = req.lower_bound()
        if lower is None or latest.parsed >= lower:
            target = latest
    if target is None:
        raise NoSatisfyingVersion(name, current)

    resolution = Resolution(name=name, mode=mode, candidate=target.version, requirement=current)
    try:
        new_requirement = upgrade_requirement(current, target.version)
    except UnsupportedRequirement:
        if req.matches(target.parsed):
            new_requirement = None
        else:
            new_requirement = format_requirement(target.version, policy.pin_style)
            resolution.warnings.append(
                f"replacing range requirement `{current}` with `{new_requirement}`"
            )
    if new_requirement is None or new_requirement == current:
        resolution.changed = False
    else:
        resolution.requirement = new_requirement
    return resolution


def resolve_set_version(current: Optional[str], intent: SetVersionIntent) -> Resolution:
    """Resolve a set-version request against the package's current version."""
    if intent.bump:
        if current is None:
            raise ValidationError("cannot bump a package that declares no version")
        new = bump_version(current, intent.bump)
    else:
        new = str(parse_version(intent.version or ""))

    if current is not None and not intent.allow_downgrade:
        if parse_version(new) < parse_version(current):
            raise VersionDowngrade(current, new)
    return Resolution(
        name="package",
        mode=ResolutionMode.LITERAL,
        candidate=new,
        requirement=new,
        changed=new != current,
    )
