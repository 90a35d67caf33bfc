"""Cargo version requirements on top of ``semantic_version``.

Cargo comparators (bare, ``^``, ``~``, ``=``, ``>``, ``>=``, ``<``, ``<=`` and
wildcards) are normalized into full-version SimpleSpec clauses so matching
and ordering are done by ``semantic_version``. Pre-release gating follows
Cargo: a pre-release only matches when some comparator names a pre-release
on the same major.minor.patch.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import semantic_version

from common.errors import InvalidRequirementSyntax, VersionDowngrade
from constants import PinStyles

_WILDCARDS = ("*", "x", "X")

_COMPARATOR_RE = re.compile(
    r"""^
    (?P<op>\^|~|=|>=|>|<=|<)?
    \s*
    (?P<major>\d+|[*xX])
    (?:\.(?P<minor>\d+|[*xX])
        (?:\.(?P<patch>\d+|[*xX]))?
    )?
    (?:-(?P<pre>[0-9A-Za-z.-]+))?
    (?:\+(?P<build>[0-9A-Za-z.-]+))?
    $""",
    re.VERBOSE,
)

BUMP_LEVELS = ["major", "minor", "patch", "release", "rc", "beta", "alpha"]
_PRE_LABELS = ["alpha", "beta", "rc"]


def _version(major: int, minor: int, patch: int, pre: Tuple[str, ...] = ()) -> semantic_version.Version:
    return semantic_version.Version(major=major, minor=minor, patch=patch, prerelease=pre or None)


def parse_version(text: str) -> semantic_version.Version:
    """Parse a full semantic version, raising InvalidRequirementSyntax on error."""
    try:
        return semantic_version.Version(text.strip())
    except ValueError as exc:
        raise InvalidRequirementSyntax(text, str(exc)) from exc


@dataclass(frozen=True)
class Comparator:
    """One comma-separated clause of a requirement.

    ``op`` is ``""`` for bare versions (caret semantics) and ``"*"`` for
    wildcard forms; missing components are None.
    """
    op: str
    major: Optional[int]
    minor: Optional[int] = None
    patch: Optional[int] = None
    pre: Tuple[str, ...] = ()

    @property
    def precision(self) -> int:
        return sum(1 for part in (self.major, self.minor, self.patch) if part is not None)

    def clauses(self) -> List[Tuple[str, semantic_version.Version]]:
        """Translate to (operator, full version) pairs understood by SimpleSpec."""
        major, minor, patch = self.major, self.minor, self.patch
        if self.op == "*":
            if major is None:
                return [(">=", _version(0, 0, 0))]
            if minor is None:
                return [(">=", _version(major, 0, 0)), ("<", _version(major + 1, 0, 0))]
            return [(">=", _version(major, minor, 0)), ("<", _version(major, minor + 1, 0))]

        low = _version(major, minor or 0, patch or 0, self.pre if patch is not None else ())
        next_major = _version(major + 1, 0, 0)
        next_minor = _version(major, (minor or 0) + 1, 0)

        if self.op in ("", "^"):
            if major > 0 or minor is None:
                upper = next_major
            elif minor > 0 or patch is None:
                upper = next_minor
            else:
                upper = _version(0, 0, patch + 1)
            return [(">=", low), ("<", upper)]
        if self.op == "~":
            upper = next_major if minor is None else next_minor
            return [(">=", low), ("<", upper)]
        if self.op == "=":
            if patch is not None:
                return [("==", low)]
            return [(">=", low), ("<", next_major if minor is None else next_minor)]
        if self.op == ">":
            if patch is not None:
                return [(">", low)]
            return [(">=", next_major if minor is None else next_minor)]
        if self.op == ">=":
            return [(">=", low)]
        if self.op == "<":
            return [("<", low)]
        # "<="
        if patch is not None:
            return [("<=", low)]
        return [("<", next_major if minor is None else next_minor)]

    def render(self) -> str:
        if self.op == "*" and self.major is None:
            return "*"
        parts = [str(self.major)]
        for part in (self.minor, self.patch):
            if part is None:
                break
            parts.append(str(part))
        if self.op == "*":
            return ".".join(parts) + ".*"
        text = self.op + ".".join(parts)
        if self.pre:
            text += "-" + ".".join(self.pre)
        return text


def _parse_component(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw in _WILDCARDS:
        return None
    return int(raw)


def _parse_comparator(text: str, whole: str) -> Comparator:
    match = _COMPARATOR_RE.match(text)
    if not match:
        raise InvalidRequirementSyntax(whole, f"unexpected `{text}`")
    op = match.group("op") or ""
    major = _parse_component(match.group("major"))
    minor = _parse_component(match.group("minor"))
    patch = _parse_component(match.group("patch"))
    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()

    present = [raw for raw in (match.group("major"), match.group("minor"), match.group("patch")) if raw is not None]
    wild = [raw in _WILDCARDS for raw in present]
    if any(wild):
        if op not in ("", "="):
            raise InvalidRequirementSyntax(whole, "wildcards cannot be combined with operators")
        if pre:
            raise InvalidRequirementSyntax(whole, "wildcards cannot carry a pre-release")
        if not all(wild[wild.index(True):]):
            raise InvalidRequirementSyntax(whole, "unexpected component after wildcard")
        return Comparator("*", major, minor, None)

    if pre and patch is None:
        raise InvalidRequirementSyntax(whole, "a pre-release needs major.minor.patch")
    return Comparator(op, major, minor, patch, pre)


class VersionReq:
    """Parsed Cargo version requirement."""

    def __init__(self, raw: str, comparators: List[Comparator]):
        self.raw = raw
        self.comparators = comparators
        clauses = [f"{op}{ver}" for comp in comparators for op, ver in comp.clauses()]
        try:
            self._spec = semantic_version.SimpleSpec(",".join(clauses))
        except ValueError as exc:
            raise InvalidRequirementSyntax(raw, str(exc)) from exc

    @classmethod
    def parse(cls, text: str) -> "VersionReq":
        raw = (text or "").strip()
        if not raw:
            raise InvalidRequirementSyntax(text or "", "empty requirement")
        pieces = [piece.strip() for piece in raw.split(",")]
        if any(not piece for piece in pieces):
            raise InvalidRequirementSyntax(raw, "empty comparator")
        return cls(raw, [_parse_comparator(piece, raw) for piece in pieces])

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"VersionReq({self.raw!r})"

    @property
    def has_prerelease(self) -> bool:
        return any(comp.pre for comp in self.comparators)

    @property
    def is_exact_pin(self) -> bool:
        return len(self.comparators) == 1 and self.comparators[0].op == "="

    def matches(self, version: semantic_version.Version) -> bool:
        if version.prerelease:
            triple = (version.major, version.minor, version.patch)
            if not any(
                comp.pre and (comp.major, comp.minor, comp.patch) == triple
                for comp in self.comparators
            ):
                return False
        return self._spec.match(version)

    def lower_bound(self) -> Optional[semantic_version.Version]:
        """Smallest version allowed by the lower-bound clauses, if any."""
        bounds = [ver for comp in self.comparators for op, ver in comp.clauses() if op in (">=", "==", ">")]
        return max(bounds) if bounds else None


def is_valid_requirement(text: str) -> bool:
    try:
        VersionReq.parse(text)
    except InvalidRequirementSyntax:
        return False
    return True


def format_requirement(version: str, style: str = PinStyles.CARET.value) -> str:
    """Render a fresh requirement for ``version`` in the given pinning style.

    Caret is Cargo's implicit operator, so it is written bare.
    """
    parse_version(version)
    if style == PinStyles.TILDE.value:
        return f"~{version}"
    if style == PinStyles.EXACT.value:
        return f"={version}"
    if style == PinStyles.CARET.value:
        return version
    raise ValueError(f"Unknown pin style: {style}")


class UnsupportedRequirement(Exception):
    """Raised when a requirement cannot be rewritten while keeping its shape."""


def upgrade_requirement(requirement: str, version: str) -> Optional[str]:
    """Rewrite ``requirement`` to point at ``version``, keeping operator and precision.

    Returns None when nothing changes. Raises UnsupportedRequirement for
    range comparators (``>``, ``>=``, ``<``, ``<=``).
    """
    req = VersionReq.parse(requirement)
    target = parse_version(version)
    if len(req.comparators) == 1 and req.comparators[0].op == "*" and req.comparators[0].major is None:
        return None

    rewritten = []
    for comp in req.comparators:
        if comp.op in (">", ">=", "<", "<="):
            raise UnsupportedRequirement(requirement)
        precision = comp.precision
        if target.prerelease:
            precision = 3
        if comp.op == "*":
            rewritten.append(Comparator(
                "*",
                target.major,
                target.minor if comp.minor is not None else None,
                None,
            ))
            continue
        rewritten.append(Comparator(
            comp.op,
            target.major,
            target.minor if precision >= 2 else None,
            target.patch if precision >= 3 else None,
            tuple(target.prerelease) if precision >= 3 else (),
        ))

    text = ", ".join(comp.render() for comp in rewritten)
    if not VersionReq.parse(text).matches(target):
        raise UnsupportedRequirement(requirement)
    if text == req.raw:
        return None
    return text


def bump_version(current: str, level: str) -> str:
    """Compute the next version for a ``--bump`` level."""
    ver = parse_version(current)
    major, minor, patch = ver.major, ver.minor, ver.patch
    pre = tuple(ver.prerelease)

    if level == "major":
        if pre and minor == 0 and patch == 0 and major > 0:
            return str(_version(major, 0, 0))
        return str(_version(major + 1, 0, 0))
    if level == "minor":
        if pre and patch == 0:
            return str(_version(major, minor, 0))
        return str(_version(major, minor + 1, 0))
    if level == "patch":
        if pre:
            return str(_version(major, minor, patch))
        return str(_version(major, minor, patch + 1))
    if level == "release":
        return str(_version(major, minor, patch))
    if level in _PRE_LABELS:
        if not pre:
            return str(_version(major, minor, patch + 1, (level, "1")))
        label = pre[0]
        if label == level:
            counter = pre[1] if len(pre) > 1 else "0"
            if not counter.isdigit():
                raise InvalidRequirementSyntax(current, f"cannot increment pre-release `{'.'.join(pre)}`")
            return str(_version(major, minor, patch, (level, str(int(counter) + 1))))
        if label in _PRE_LABELS and _PRE_LABELS.index(label) > _PRE_LABELS.index(level):
            raise VersionDowngrade(current, f"{major}.{minor}.{patch}-{level}.1")
        return str(_version(major, minor, patch, (level, "1")))
    raise ValueError(f"Unknown bump level: {level}")
