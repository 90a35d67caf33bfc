"""Shared fixtures: an in-memory registry and small manifest trees on disk."""

import os

import pytest

from common.errors import PackageNotFound
from constants import Constants
from registry.client import reset_default_client
from versioning.models import IndexVersion, RegistryIndexEntry


class FakeRegistry:
    """Stands in for RegistryClient; versions are given as plain strings.

    A trailing ``!`` marks a version as yanked.
    """

    def __init__(self, packages=None, features=None):
        self.packages = {}
        self.prefetched = []
        for name, versions in (packages or {}).items():
            self.add(name, versions, (features or {}).get(name, ()))

    def add(self, name, versions, features=()):
        self.packages[name] = RegistryIndexEntry(
            name=name,
            versions=tuple(
                IndexVersion(version=v.rstrip("!"), yanked=v.endswith("!"), features=tuple(features))
                for v in versions
            ),
        )

    def fetch_versions(self, name, *, include_yanked=False):
        entry = self.packages.get(name)
        if entry is None:
            raise PackageNotFound(name)
        if include_yanked:
            return entry
        return RegistryIndexEntry(name=entry.name, versions=tuple(entry.candidates()))

    def prefetch(self, names):
        names = list(names)
        self.prefetched.extend(names)
        return {name: None for name in names}


def write(path, text):
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(str(path), "w", encoding="utf-8", newline="") as fh:
        fh.write(text)
    return str(path)


def read(path):
    with open(str(path), "r", encoding="utf-8", newline="") as fh:
        return fh.read()


def package_manifest(name, version="0.1.0", body=""):
    return f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2021"\n' + body


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch, tmp_path):
    """Keep registry settings and the shared client from leaking between tests."""
    monkeypatch.setattr(Constants, "REGISTRY_CACHE_DIR", str(tmp_path / "index-cache"))
    monkeypatch.setattr(Constants, "REGISTRY_OFFLINE", False)
    monkeypatch.setattr(Constants, "PIN_STYLE", "caret")
    monkeypatch.setattr(Constants, "HTTP_RETRY_MAX", 1)
    reset_default_client()
    yield
    reset_default_client()


@pytest.fixture
def fake_registry():
    return FakeRegistry({
        "serde": ["1.0.0", "1.0.150", "1.0.200", "2.0.0-alpha.1"],
        "rand": ["0.7.3", "0.8.0", "0.8.5", "0.9.0"],
        "log": ["0.4.0", "0.4.20"],
        "tokio": ["1.0.0", "1.38.0", "1.39.0!"],
    }, features={"serde": ("std", "derive", "alloc"), "tokio": ("full", "rt", "macros")})


@pytest.fixture
def single_crate(tmp_path):
    """A lone package (no workspace) bounded by a .git directory."""
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    body = (
        '\n[dependencies]\n'
        'serde = "1.0.0"\n'
        'log = "0.4"  # logging facade\n'
        '\n[dev-dependencies]\n'
        'rand = "=0.8.0"\n'
    )
    write(root / "Cargo.toml", package_manifest("demo", body=body))
    return root


@pytest.fixture
def workspace_tree(tmp_path):
    """Virtual workspace with members a, b (depends on a) and c."""
    root = tmp_path / "ws"
    (root / ".git").mkdir(parents=True)
    write(root / "Cargo.toml", (
        '[workspace]\n'
        'members = ["crates/*"]\n'
        'resolver = "2"\n'
        '\n[workspace.dependencies]\n'
        'tokio = "1.0.0"\n'
    ))
    write(root / "crates" / "a" / "Cargo.toml", package_manifest("a", body=(
        '\n[dependencies]\n'
        'serde = "1.0.0"\n'
    )))
    write(root / "crates" / "b" / "Cargo.toml", package_manifest("b", body=(
        '\n[dependencies]\n'
        'a = { path = "../a", version = "0.1.0" }\n'
        'log = "0.4.0"\n'
    )))
    write(root / "crates" / "c" / "Cargo.toml", package_manifest("c", body=(
        '\n[dependencies]\n'
        'tokio = { workspace = true }\n'
    )))
    return root
