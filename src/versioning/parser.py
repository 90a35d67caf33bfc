"""Token parsing utilities for dependency arguments."""

import re
from typing import Optional, Tuple

from common.errors import InvalidRequirementSyntax
from .requirement import VersionReq

# Crate names: ASCII alphanumerics, '-' and '_', starting with a letter.
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, requirement or None) using the rightmost-'@' rule."""
    s = s.strip()
    if "@" not in s:
        return s, None
    name, _, spec = s.rpartition("@")
    spec = spec.strip()
    return name.strip(), spec if spec else None


def is_valid_crate_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


def parse_dependency_token(token: str) -> Tuple[str, Optional[str]]:
    """Parse a CLI token like ``serde`` or ``serde@1.0`` into (name, requirement).

    The requirement is validated but returned verbatim; ``latest`` means no
    requirement.
    """
    name, spec = tokenize_rightmost_at(token)
    if not is_valid_crate_name(name):
        raise InvalidRequirementSyntax(token, f"`{name}` is not a valid crate name")
    if spec is None or spec.lower() == "latest":
        return name, None
    VersionReq.parse(spec)
    return name, spec
