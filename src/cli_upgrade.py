"""`crate-edit upgrade` handler."""

from __future__ import annotations

import logging

from cli_common import report_outcome, selection_from_args
from constants import ExitCodes
from orchestrator import run_command
from versioning.models import UpgradeIntent
from versioning.parser import parse_dependency_token

logger = logging.getLogger(__name__)


def build_upgrade_intent(args) -> UpgradeIntent:
    targets = tuple(parse_dependency_token(token) for token in args.DEPENDENCIES)
    if args.INCOMPATIBLE and any(req for _, req in targets):
        logger.debug("Explicit requirements take precedence over --incompatible")
    return UpgradeIntent(
        targets=targets,
        incompatible=args.INCOMPATIBLE,
        pinned=args.PINNED,
        allow_prerelease=args.ALLOW_PRERELEASE,
        exclude=tuple(args.EXCLUDE),
    )


def run_upgrade(args, registry=None) -> ExitCodes:
    intent = build_upgrade_intent(args)
    report = run_command("upgrade", [intent], selection_from_args(args), registry=registry, dry_run=args.DRY_RUN)
    return report_outcome(report)
