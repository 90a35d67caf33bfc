"""Tests for workspace discovery and target selection."""

import os

import pytest

from common.errors import DiscoveryError
from workspace.discovery import discover_workspace, find_manifest_upward, select_targets

from conftest import package_manifest, write


class TestFindManifestUpward:
    """The upward search stops at the project boundary."""

    def test_finds_nearest(self, single_crate):
        sub = single_crate / "src" / "bin"
        sub.mkdir(parents=True)
        assert find_manifest_upward(str(sub)) == str(single_crate / "Cargo.toml")

    def test_stops_at_vcs_marker(self, tmp_path):
        write(tmp_path / "Cargo.toml", package_manifest("outer"))
        inner = tmp_path / "inner"
        (inner / ".git").mkdir(parents=True)
        (inner / "src").mkdir()
        assert find_manifest_upward(str(inner / "src")) is None

    def test_no_manifest_is_a_discovery_error(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with pytest.raises(DiscoveryError):
            discover_workspace(start=str(tmp_path))


class TestDiscoverWorkspace:
    """Root manifest, members and path edges."""

    def test_single_package(self, single_crate):
        graph = discover_workspace(start=str(single_crate))
        assert graph.root_manifest == str(single_crate / "Cargo.toml")
        assert not graph.has_workspace
        assert not graph.is_virtual
        assert [m.name for m in graph.members] == ["demo"]
        assert graph.members[0].version == "0.1.0"

    def test_virtual_workspace(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        assert graph.is_virtual
        assert graph.has_workspace
        assert [m.name for m in graph.members] == ["a", "b", "c"]

    def test_member_start_finds_root(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree / "crates" / "b"))
        assert graph.root_manifest == str(workspace_tree / "Cargo.toml")
        assert graph.start_manifest == str(workspace_tree / "crates" / "b" / "Cargo.toml")

    def test_explicit_manifest_path(self, workspace_tree):
        graph = discover_workspace(manifest_path=str(workspace_tree / "crates" / "a"))
        assert graph.start_manifest == str(workspace_tree / "crates" / "a" / "Cargo.toml")

    def test_missing_manifest_path(self, tmp_path):
        with pytest.raises(DiscoveryError):
            discover_workspace(manifest_path=str(tmp_path / "nope" / "Cargo.toml"))

    def test_path_edges(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        edges = graph.dependents_of("a")
        assert len(edges) == 1
        assert edges[0].dependent == "b"
        assert edges[0].requirement == "0.1.0"
        assert graph.dependents_of("b") == []

    def test_exclude_and_missing_member_manifest(self, workspace_tree):
        root = workspace_tree / "Cargo.toml"
        text = root.read_text(encoding="utf-8").replace(
            'members = ["crates/*"]', 'members = ["crates/*"]\nexclude = ["crates/c"]'
        )
        root.write_text(text, encoding="utf-8")
        (workspace_tree / "crates" / "empty").mkdir()

        graph = discover_workspace(start=str(workspace_tree))

        assert [m.name for m in graph.members] == ["a", "b"]

    def test_inherited_package_version(self, workspace_tree):
        root = workspace_tree / "Cargo.toml"
        root.write_text(root.read_text(encoding="utf-8") + '\n[workspace.package]\nversion = "2.1.0"\n',
                        encoding="utf-8")
        write(workspace_tree / "crates" / "d" / "Cargo.toml",
              '[package]\nname = "d"\nversion.workspace = true\n')

        graph = discover_workspace(start=str(workspace_tree))

        member = graph.get("d")
        assert member.version_inherited
        assert member.version == "2.1.0"
        assert graph.workspace_version == "2.1.0"


class TestSelectTargets:
    """Package selectors."""

    def test_defaults_to_all_members_of_virtual_root(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        assert [m.name for m in select_targets(graph)] == ["a", "b", "c"]

    def test_defaults_to_current_package(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree / "crates" / "b"))
        assert [m.name for m in select_targets(graph)] == ["b"]

    def test_explicit_packages(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        assert [m.name for m in select_targets(graph, packages=["c", "a"])] == ["c", "a"]

    def test_workspace_with_exclude(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree / "crates" / "a"))
        selected = select_targets(graph, workspace=True, exclude=["b", "unknown"])
        assert [m.name for m in selected] == ["a", "c"]

    def test_unknown_package(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        with pytest.raises(DiscoveryError):
            select_targets(graph, packages=["zzz"])

    def test_everything_excluded(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        with pytest.raises(DiscoveryError):
            select_targets(graph, exclude=["a", "b", "c"])

    def test_members_are_real_paths(self, workspace_tree):
        graph = discover_workspace(start=str(workspace_tree))
        assert all(os.path.isfile(m.manifest_path) for m in graph.members)
