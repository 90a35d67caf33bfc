"""`crate-edit rm` handler."""

from __future__ import annotations

from cli_common import location_from_args, report_outcome, selection_from_args
from constants import ExitCodes
from orchestrator import run_command
from versioning.models import RemoveIntent


def run_rm(args, registry=None) -> ExitCodes:
    location = location_from_args(args)
    intents = [RemoveIntent(name=name, location=location) for name in dict.fromkeys(args.DEPENDENCIES)]
    report = run_command("rm", intents, selection_from_args(args), registry=registry, dry_run=args.DRY_RUN)
    return report_outcome(report)
