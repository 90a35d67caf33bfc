"""`crate-edit set-version` handler."""

from __future__ import annotations

from cli_common import report_outcome, selection_from_args
from constants import ExitCodes
from orchestrator import run_command
from versioning.models import SetVersionIntent


def run_set_version(args, registry=None) -> ExitCodes:
    intent = SetVersionIntent(version=args.VALUE, bump=args.BUMP, allow_downgrade=args.ALLOW_DOWNGRADE)
    report = run_command("set-version", [intent], selection_from_args(args), registry=registry,
                         dry_run=args.DRY_RUN)
    return report_outcome(report)
