"""CLI configuration overrides for runtime tunables.

Applied after the YAML config and CRATE_EDIT_* environment variables, so
command-line flags have the highest precedence.
"""

from __future__ import annotations

import logging

from constants import Constants
from registry.client import reset_default_client

logger = logging.getLogger(__name__)


def apply_cli_overrides(args) -> None:
    """Apply CLI overrides for registry and resolver settings."""
    if getattr(args, "OFFLINE", False):
        Constants.REGISTRY_OFFLINE = True
    if getattr(args, "PIN_STYLE", None):
        Constants.PIN_STYLE = args.PIN_STYLE
    # The process-wide registry client snapshots Constants when created.
    reset_default_client()
    logger.debug(
        "Effective settings: index=%s cache=%s ttl=%ss offline=%s pin_style=%s",
        Constants.REGISTRY_INDEX_URL,
        Constants.REGISTRY_CACHE_DIR,
        Constants.REGISTRY_CACHE_TTL_SEC,
        Constants.REGISTRY_OFFLINE,
        Constants.PIN_STYLE,
    )
