"""Command orchestration: select targets, resolve, edit, validate, commit.

SELECT_TARGETS -> { LOAD -> RESOLVE -> EDIT -> VALIDATE }* -> COMMIT_ALL | DISCARD_ALL -> REPORT

Edits are staged in memory. If any target fails before the commit phase,
every staged edit is discarded and nothing is written.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Set, Tuple

from constants import Constants, ExitCodes
from common.errors import (
    CrateEditError,
    DependencyNotFound,
    DiscoveryError,
    InheritedDependencyConflict,
    NoSatisfyingVersion,
    PartialCommit,
    RegistryUnreachable,
    WriteError,
)
from common.fs import atomic_write_text
from common.logging_utils import Timer, extra_context, is_debug_enabled
from manifest.document import ManifestDocument
from manifest import editor
from manifest.editor import is_inherited
from manifest.models import DependencySpec, SourceKind, TableLocation
from manifest.validate import validate_manifest
from registry.client import get_default_client
from versioning.models import (
    AddIntent,
    RegistryIndexEntry,
    RemoveIntent,
    SetVersionIntent,
    UpgradeIntent,
)
from versioning.requirement import (
    UnsupportedRequirement,
    VersionReq,
    format_requirement,
    parse_version,
    upgrade_requirement,
)
from versioning.resolver import ResolverPolicy, resolve_add, resolve_set_version, resolve_upgrade
from workspace.discovery import discover_workspace, select_targets
from workspace.models import WorkspaceGraph, WorkspaceMember

logger = logging.getLogger(__name__)


@dataclass
class ChangeRecord:
    """One applied edit."""
    manifest_path: str
    package: Optional[str]
    action: str
    name: str
    table: Optional[str] = None
    old: Optional[str] = None
    new: Optional[str] = None

    def describe(self) -> str:
        where = f" in {self.table}" if self.table else ""
        if self.action == "remove":
            return f"removed {self.name}{where}"
        if self.old and self.new:
            return f"{self.action} {self.name}{where}: {self.old} -> {self.new}"
        if self.new:
            return f"{self.action} {self.name}{where}: {self.new}"
        return f"{self.action} {self.name}{where}"


@dataclass
class TargetFailure:
    """A target that failed during RESOLVE, EDIT, VALIDATE or COMMIT."""
    package: Optional[str]
    manifest_path: str
    error: CrateEditError

    @property
    def kind(self) -> str:
        return self.error.kind


@dataclass
class CommitReport:
    written: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class OperationReport:
    """Outcome of one invocation, consumed by the CLI layer."""
    command: str
    dry_run: bool = False
    changes: List[ChangeRecord] = field(default_factory=list)
    failures: List[TargetFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    commit: Optional[CommitReport] = None

    @property
    def modified_manifests(self) -> List[str]:
        return sorted({c.manifest_path for c in self.changes})

    @property
    def status(self) -> str:
        if self.failures:
            if self.commit is not None and self.commit.written:
                return "some written, some failed"
            return "nothing changed"
        if not self.changes:
            return "nothing changed"
        if self.dry_run:
            return "dry run"
        return "changes written"

    @property
    def exit_code(self) -> ExitCodes:
        if not self.failures:
            return ExitCodes.SUCCESS
        return self.failures[0].error.category.exit_code


@dataclass(frozen=True)
class TargetSelection:
    """Which manifests an invocation operates on."""
    start: Optional[str] = None
    manifest_path: Optional[str] = None
    packages: Tuple[str, ...] = ()
    workspace: bool = False
    exclude: Tuple[str, ...] = ()


class Orchestrator:
    """Drive one command across the selected workspace members."""

    def __init__(self, registry=None, policy: Optional[ResolverPolicy] = None, dry_run: bool = False):
        self.registry = registry if registry is not None else get_default_client()
        self.policy = policy
        self.dry_run = dry_run
        self._documents: Dict[str, ManifestDocument] = {}
        self._graph: Optional[WorkspaceGraph] = None

    # Entry points

    def run(self, command: str, intents: Sequence, selection: TargetSelection) -> OperationReport:
        """Execute ``intents`` for ``command`` over the selected targets.

        Raises:
            DiscoveryError: target selection failed; nothing was loaded.
            PartialCommit: interrupted while writing; lists written and pending files.
        """
        self._documents = {}
        graph = discover_workspace(selection.start, selection.manifest_path)
        self._graph = graph
        targets = select_targets(graph, selection.packages, selection.workspace, selection.exclude)
        report = OperationReport(command=command, dry_run=self.dry_run)

        with Timer() as t:
            if command == "add":
                self._run_add(graph, targets, intents, report)
            elif command == "rm":
                self._run_remove(graph, targets, intents, report)
            elif command == "upgrade":
                self._run_upgrade(graph, targets, intents[0], report, selection)
            elif command == "set-version":
                self._run_set_version(graph, targets, intents[0], report)
            else:
                raise ValueError(f"Unknown command: {command}")

            if not report.failures:
                self._validate(report)

        if is_debug_enabled(logger):
            logger.debug(
                "Edits staged",
                extra=extra_context(
                    event="staged",
                    component="orchestrator",
                    action=command,
                    count=len(report.changes),
                    failures=len(report.failures),
                    duration_ms=t.duration_ms(),
                ),
            )

        if report.failures:
            self._discard(report)
        elif self.dry_run:
            for path in report.modified_manifests:
                logger.info("Would update %s", path)
            logger.warning("aborting %s due to dry run", command)
        else:
            report.commit = self._commit(report)
        return report

    # LOAD

    def _document(self, path: str) -> ManifestDocument:
        doc = self._documents.get(path)
        if doc is None:
            doc = ManifestDocument.load(path)
            self._documents[path] = doc
        return doc

    def _policy_for(self, member: Optional[WorkspaceMember]) -> ResolverPolicy:
        rust = member.rust_version if member is not None and Constants.RESPECT_RUST_VERSION else None
        if self.policy is None:
            return ResolverPolicy.from_constants(rust)
        if self.policy.rust_version is None and rust:
            return replace(self.policy, rust_version=rust)
        return self.policy

    def _fail(self, report: OperationReport, member: Optional[WorkspaceMember], manifest_path: str,
              exc: CrateEditError) -> None:
        package = member.name if member else None
        logger.error("%s: %s [%s]", package or manifest_path, exc, exc.kind)
        report.failures.append(TargetFailure(package=package, manifest_path=manifest_path, error=exc))

    def _entry(self, name: str, tolerate_unreachable: bool = False) -> Optional[RegistryIndexEntry]:
        try:
            return self.registry.fetch_versions(name)
        except RegistryUnreachable as exc:
            if tolerate_unreachable:
                logger.warning("%s", exc)
                return None
            raise

    # add

    def _add_requirement_from_path(self, manifest_path: str, intent: AddIntent) -> Optional[str]:
        base = os.path.dirname(manifest_path)
        dep_manifest = os.path.join(base, intent.path, Constants.MANIFEST_FILE)
        if not os.path.isfile(dep_manifest):
            raise DiscoveryError(f"no `{Constants.MANIFEST_FILE}` found at path `{intent.path}`")
        version, inherited = editor.package_version(self._document(dep_manifest))
        if inherited and self._graph is not None:
            version = self._graph.workspace_version
        return version

    def _resolve_add(self, manifest_path: str, member: Optional[WorkspaceMember], intent: AddIntent,
                     report: OperationReport) -> Optional[str]:
        """Requirement to write for an add; None keeps the existing one."""
        doc = self._document(manifest_path)
        existing = doc.get_entry(intent.location.path, intent.entry_name)
        if existing is not None and is_inherited(existing) and not intent.location.workspace:
            raise InheritedDependencyConflict(intent.entry_name, manifest_path)

        if intent.path:
            return intent.requirement or self._add_requirement_from_path(manifest_path, intent)
        if intent.git:
            return intent.requirement
        if intent.requirement is None and existing is not None:
            current = editor.read_dependency(intent.entry_name, existing, intent.location)
            if current.requirement is not None:
                return None
        if intent.registry:
            if intent.requirement is None:
                raise NoSatisfyingVersion(
                    intent.name,
                    reason=f"versions of `{intent.name}` in registry `{intent.registry}` cannot be "
                           "looked up; give an explicit requirement",
                )
            return intent.requirement

        entry = self._entry(intent.name, tolerate_unreachable=intent.requirement is not None)
        resolution = resolve_add(intent, entry, self._policy_for(member))
        for warning in resolution.warnings:
            logger.warning("%s", warning)
            report.warnings.append(warning)
        if entry is not None and resolution.candidate and intent.features:
            self._check_features(entry, resolution.candidate, intent, report)
        return resolution.requirement

    def _check_features(self, entry: RegistryIndexEntry, version: str, intent: AddIntent,
                        report: OperationReport) -> None:
        for candidate in entry.versions:
            if candidate.version != version:
                continue
            known = set(candidate.features)
            unknown = [f for f in intent.features if f not in known and "/" not in f]
            if unknown:
                warning = f"unrecognized features for `{intent.name}` {version}: {', '.join(unknown)}"
                logger.warning("%s", warning)
                report.warnings.append(warning)
            return

    def _add_targets(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                     location: TableLocation) -> List[Tuple[Optional[WorkspaceMember], str]]:
        if location.workspace:
            if not graph.has_workspace:
                raise DiscoveryError(f"`{graph.root_manifest}` does not declare a [workspace]")
            return [(None, graph.root_manifest)]
        return [(member, member.manifest_path) for member in targets]

    def _run_add(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                 intents: Sequence[AddIntent], report: OperationReport) -> None:
        registry_names = [i.name for i in intents if not (i.path or i.git or i.registry)]
        self.registry.prefetch(registry_names)
        for intent in intents:
            for member, manifest_path in self._add_targets(graph, targets, intent.location):
                try:
                    requirement = self._resolve_add(manifest_path, member, intent, report)
                    doc = self._document(manifest_path)
                    if editor.add_dependency(doc, intent, requirement):
                        shown = f" v{requirement}" if requirement else ""
                        logger.info("Adding %s%s to %s", intent.entry_name, shown, intent.location.display())
                        report.changes.append(ChangeRecord(
                            manifest_path=manifest_path,
                            package=member.name if member else None,
                            action="add",
                            name=intent.entry_name,
                            table=intent.location.display(),
                            new=requirement,
                        ))
                    else:
                        logger.info("%s is already up to date in %s", intent.entry_name, intent.location.display())
                except CrateEditError as exc:
                    self._fail(report, member, manifest_path, exc)

    # rm

    def _run_remove(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                    intents: Sequence[RemoveIntent], report: OperationReport) -> None:
        for intent in intents:
            for member, manifest_path in self._add_targets(graph, targets, intent.location):
                try:
                    doc = self._document(manifest_path)
                    spec = editor.remove_dependency(doc, intent.name, intent.location)
                    logger.info("Removing %s from %s", intent.name, intent.location.display())
                    report.changes.append(ChangeRecord(
                        manifest_path=manifest_path,
                        package=member.name if member else None,
                        action="remove",
                        name=intent.name,
                        table=intent.location.display(),
                        old=spec.requirement,
                    ))
                except CrateEditError as exc:
                    self._fail(report, member, manifest_path, exc)

    # upgrade

    @staticmethod
    def _upgradable(location: TableLocation, spec: DependencySpec) -> bool:
        if location.workspace:
            return spec.source == SourceKind.REGISTRY and spec.requirement is not None
        return spec.source == SourceKind.REGISTRY and spec.registry is None and spec.requirement is not None

    def _upgrade_plan(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                      intent: UpgradeIntent, selection: TargetSelection
                      ) -> List[Tuple[Optional[WorkspaceMember], str, TableLocation, DependencySpec]]:
        plan = []
        inherited: Set[str] = set()
        for member in targets:
            doc = self._document(member.manifest_path)
            for location, spec in editor.iter_dependencies(doc, intent.kinds):
                if location.workspace:
                    continue
                if not (intent.selects(spec.name) or intent.selects(spec.registry_name)):
                    continue
                if spec.inherited:
                    inherited.add(spec.name)
                    continue
                if self._upgradable(location, spec):
                    plan.append((member, member.manifest_path, location, spec))

        if graph.has_workspace:
            root_selected = any(m.manifest_path == graph.root_manifest for m in targets)
            whole = selection.workspace or len(targets) == len(graph.members)
            root_doc = self._document(graph.root_manifest)
            location = TableLocation(workspace=True)
            for name, entry in root_doc.iter_entries(location.path):
                spec = editor.read_dependency(name, entry, location)
                if not (intent.selects(spec.name) or intent.selects(spec.registry_name)):
                    continue
                if name not in inherited and not (root_selected or whole):
                    continue
                if self._upgradable(location, spec):
                    plan.append((graph.member_for_manifest(graph.root_manifest),
                                 graph.root_manifest, location, spec))
        return plan

    def _run_upgrade(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                     intent: UpgradeIntent, report: OperationReport, selection: TargetSelection) -> None:
        plan = self._upgrade_plan(graph, targets, intent, selection)
        self.registry.prefetch(
            spec.registry_name for _, _, _, spec in plan if not intent.forced_requirement(spec.name)
        )
        matched: Set[str] = set()
        for member, manifest_path, location, spec in plan:
            matched.update({spec.name, spec.registry_name})
            try:
                forced = intent.forced_requirement(spec.name) or intent.forced_requirement(spec.registry_name)
                entry = None if forced else self._entry(spec.registry_name)
                resolution = resolve_upgrade(spec.registry_name, spec.requirement, entry, intent,
                                             self._policy_for(member))
                if spec.name != spec.registry_name and forced:
                    resolution.requirement = forced
                    resolution.changed = forced != spec.requirement
                for warning in resolution.warnings:
                    logger.debug("%s: %s", spec.name, warning)
                if not resolution.changed or resolution.requirement is None:
                    logger.debug("%s is up to date (%s)", spec.name, spec.requirement)
                    continue
                doc = self._document(manifest_path)
                editor.set_version(doc, spec.name, location, resolution.requirement)
                logger.info("Upgrading %s: %s -> %s", spec.name, spec.requirement, resolution.requirement)
                report.changes.append(ChangeRecord(
                    manifest_path=manifest_path,
                    package=member.name if member else None,
                    action="upgrade",
                    name=spec.name,
                    table=location.display(),
                    old=spec.requirement,
                    new=resolution.requirement,
                ))
            except CrateEditError as exc:
                self._fail(report, member, manifest_path, exc)

        for name, _ in intent.targets:
            if name not in matched:
                self._fail(report, None, graph.root_manifest,
                           DependencyNotFound(name, "the selected manifests"))

    # set-version

    def _run_set_version(self, graph: WorkspaceGraph, targets: Sequence[WorkspaceMember],
                         intent: SetVersionIntent, report: OperationReport) -> None:
        workspace_done: Optional[str] = None
        for member in targets:
            try:
                resolution = resolve_set_version(member.version, intent)
                new = resolution.requirement
                if not resolution.changed:
                    logger.info("%s is already at %s", member.name, new)
                    continue
                if member.version_inherited:
                    if workspace_done is None:
                        root_doc = self._document(graph.root_manifest)
                        editor.set_workspace_package_version(root_doc, new)
                        logger.info("Upgrading workspace package version from %s to %s", member.version, new)
                        report.changes.append(ChangeRecord(
                            manifest_path=graph.root_manifest,
                            package=None,
                            action="set-version",
                            name="workspace.package",
                            old=member.version,
                            new=new,
                        ))
                        workspace_done = new
                        self._update_inheriting_dependents(graph, new, report)
                else:
                    doc = self._document(member.manifest_path)
                    editor.set_package_version(doc, new)
                    logger.info("Upgrading %s from %s to %s", member.name, member.version, new)
                    report.changes.append(ChangeRecord(
                        manifest_path=member.manifest_path,
                        package=member.name,
                        action="set-version",
                        name=member.name,
                        old=member.version,
                        new=new,
                    ))
                    self._update_dependents(graph, member.name, new, report)
            except CrateEditError as exc:
                self._fail(report, member, member.manifest_path, exc)

    def _update_inheriting_dependents(self, graph: WorkspaceGraph, new: str, report: OperationReport) -> None:
        for member in graph.members:
            if member.version_inherited:
                self._update_dependents(graph, member.name, new, report)

    def _update_dependents(self, graph: WorkspaceGraph, name: str, new: str, report: OperationReport) -> None:
        version = parse_version(new)
        for edge in graph.dependents_of(name):
            if edge.requirement is None:
                continue
            if VersionReq.parse(edge.requirement).matches(version):
                continue
            try:
                requirement = upgrade_requirement(edge.requirement, new) or edge.requirement
            except UnsupportedRequirement:
                requirement = format_requirement(new, Constants.PIN_STYLE)
            doc = self._document(edge.manifest_path)
            if editor.set_version(doc, edge.key, edge.location, requirement):
                logger.info("Updating %s's dependency on %s: %s -> %s",
                            edge.dependent or "workspace", edge.key, edge.requirement, requirement)
                report.changes.append(ChangeRecord(
                    manifest_path=edge.manifest_path,
                    package=edge.dependent,
                    action="update",
                    name=edge.key,
                    table=edge.location.display(),
                    old=edge.requirement,
                    new=requirement,
                ))

    # VALIDATE / COMMIT

    def _modified(self) -> List[ManifestDocument]:
        return [doc for _, doc in sorted(self._documents.items()) if doc.is_modified]

    def _validate(self, report: OperationReport) -> None:
        for doc in self._modified():
            try:
                validate_manifest(doc.to_string(), doc.original_text, doc.path or "manifest")
            except CrateEditError as exc:
                member = self._graph.member_for_manifest(doc.path) if self._graph else None
                self._fail(report, member, doc.path or "manifest", exc)

    def _discard(self, report: OperationReport) -> None:
        staged = len(self._modified())
        self._documents = {}
        logger.error(
            "%d target(s) failed; discarded %d staged manifest edit(s), nothing was written",
            len(report.failures), staged,
        )

    def _commit(self, report: OperationReport) -> CommitReport:
        """Write each modified manifest atomically, one file at a time.

        A file that cannot be written is recorded as a WriteError failure and
        the remaining files are still attempted.

        Raises:
            PartialCommit: interrupted part way through.
        """
        docs = self._modified()
        commit = CommitReport(pending=[doc.path for doc in docs])
        try:
            for doc in docs:
                try:
                    atomic_write_text(doc.path, doc.to_string())
                except OSError as exc:
                    error = WriteError(f"failed to write {doc.path}: {exc}")
                    member = self._graph.member_for_manifest(doc.path) if self._graph else None
                    self._fail(report, member, doc.path, error)
                    commit.failed.append(doc.path)
                else:
                    commit.written.append(doc.path)
                    logger.debug("Wrote %s", doc.path)
                commit.pending.remove(doc.path)
        except KeyboardInterrupt as exc:
            raise PartialCommit(
                f"interrupted after writing {len(commit.written)} of {len(docs)} manifest(s)",
                commit.written,
                commit.pending + commit.failed,
            ) from exc
        return commit


def run_command(command: str, intents: Sequence, selection: TargetSelection,
                registry=None, dry_run: bool = False, policy: Optional[ResolverPolicy] = None
                ) -> OperationReport:
    """Convenience wrapper used by the CLI handlers."""
    orchestrator = Orchestrator(registry=registry, policy=policy, dry_run=dry_run)
    return orchestrator.run(command, intents, selection)
