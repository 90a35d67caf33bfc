"""`crate-edit add` handler."""

from __future__ import annotations

from cli_common import location_from_args, report_outcome, selection_from_args, split_features
from constants import ExitCodes
from orchestrator import run_command
from versioning.models import AddIntent
from versioning.parser import parse_dependency_token


def build_add_intents(args):
    """Turn parsed ``add`` arguments into one AddIntent per dependency."""
    location = location_from_args(args)
    features = split_features(args.FEATURES)
    intents = []
    for token in args.DEPENDENCIES:
        name, requirement = parse_dependency_token(token)
        intents.append(AddIntent(
            name=name,
            requirement=requirement,
            location=location,
            features=features,
            default_features=args.DEFAULT_FEATURES,
            optional=args.OPTIONAL,
            rename=args.RENAME,
            registry=args.REGISTRY,
            path=args.PATH,
            git=args.GIT,
            branch=args.BRANCH,
            tag=args.TAG,
            rev=args.REV,
            allow_prerelease=args.ALLOW_PRERELEASE,
        ))
    return intents


def run_add(args, registry=None) -> ExitCodes:
    intents = build_add_intents(args)
    report = run_command("add", intents, selection_from_args(args), registry=registry, dry_run=args.DRY_RUN)
    return report_outcome(report)
