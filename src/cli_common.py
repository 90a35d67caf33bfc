"""Helpers shared by the sub-command handlers."""

from __future__ import annotations

import logging
import os
import re
from typing import Iterable, Tuple

from constants import ExitCodes
from manifest.models import DependencyKind, TableLocation
from orchestrator import OperationReport, TargetSelection

logger = logging.getLogger(__name__)


def selection_from_args(args) -> TargetSelection:
    return TargetSelection(
        start=os.getcwd(),
        manifest_path=getattr(args, "MANIFEST_PATH", None),
        packages=tuple(getattr(args, "PACKAGES", None) or ()),
        workspace=bool(getattr(args, "WORKSPACE", False)),
        exclude=tuple(getattr(args, "EXCLUDE_PACKAGES", None) or ()),
    )


def location_from_args(args) -> TableLocation:
    if getattr(args, "WORKSPACE_TABLE", False):
        return TableLocation(workspace=True)
    if getattr(args, "DEV", False):
        kind = DependencyKind.DEVELOPMENT
    elif getattr(args, "BUILD", False):
        kind = DependencyKind.BUILD
    else:
        kind = DependencyKind.NORMAL
    return TableLocation(kind=kind, target=getattr(args, "TARGET", None))


def split_features(values: Iterable[str]) -> Tuple[str, ...]:
    """Flatten ``-F a,b -F "c d"`` into ordered, de-duplicated feature names."""
    features = []
    for value in values or ():
        for feature in re.split(r"[,\s]+", value.strip()):
            if feature and feature not in features:
                features.append(feature)
    return tuple(features)


def report_outcome(report: OperationReport) -> ExitCodes:
    """Log the one-line summary for a finished operation and pick the exit code."""
    status = report.status
    manifests = report.modified_manifests
    if status == "some written, some failed":
        logger.error(
            "Some changes written, some failed: wrote %s; failed %s",
            ", ".join(report.commit.written),
            ", ".join(sorted({f.manifest_path for f in report.failures})),
        )
    elif report.failures:
        logger.error("Nothing changed: %d target(s) failed", len(report.failures))
    elif status == "nothing changed":
        logger.info("Nothing changed")
    elif status == "dry run":
        logger.info("Dry run: %d change(s) in %d manifest(s) not written", len(report.changes), len(manifests))
    else:
        logger.info("Updated %d manifest(s)", len(manifests))
    return report.exit_code
