"""Tests for the sparse index client (HTTP mocked at robust_get)."""

import json
import logging
import os
import time
from unittest.mock import patch

import pytest

from common.errors import PackageNotFound, RegistryUnreachable
from registry.cache import CachedIndex, IndexCache
from registry.client import RegistryClient
from versioning.models import IndexVersion, RegistryIndexEntry

BASE = "https://index.example/"


def body(name, *versions):
    lines = []
    for v in versions:
        lines.append(json.dumps({
            "name": name,
            "vers": v.rstrip("!"),
            "yanked": v.endswith("!"),
            "features": {},
        }))
    return "\n".join(lines) + "\n"


def make_client(tmp_path, ttl=60, offline=False):
    cache = IndexCache(root=str(tmp_path / "cache"), ttl=ttl)
    return RegistryClient(cache=cache, index_url=BASE, offline=offline, max_workers=4)


def seed(client, name, versions, age):
    entry = RegistryIndexEntry(name=name, versions=tuple(IndexVersion(v) for v in versions))
    client.cache.put(CachedIndex(entry=entry, fetched_at=time.time() - age, etag='"v1"'))


class TestFetchVersions:
    """Fetching, caching and yanked filtering."""

    @patch("registry.client.robust_get")
    def test_fetch_and_cache(self, mock_get, tmp_path):
        mock_get.return_value = (200, {"ETag": '"abc"'}, body("serde", "1.0.0", "1.0.1!"))
        client = make_client(tmp_path)

        entry = client.fetch_versions("serde")

        assert [v.version for v in entry.versions] == ["1.0.0"]
        mock_get.assert_called_once()
        assert mock_get.call_args[0][0] == BASE + "se/rd/serde"
        cached = client.cache.get("serde")
        assert cached.etag == '"abc"'
        assert [v.version for v in cached.entry.versions] == ["1.0.0", "1.0.1"]

    @patch("registry.client.robust_get")
    def test_include_yanked(self, mock_get, tmp_path):
        mock_get.return_value = (200, {}, body("serde", "1.0.0", "1.0.1!"))
        entry = make_client(tmp_path).fetch_versions("serde", include_yanked=True)
        assert [v.version for v in entry.versions] == ["1.0.0", "1.0.1"]

    @patch("registry.client.robust_get")
    def test_fresh_cache_skips_network(self, mock_get, tmp_path):
        client = make_client(tmp_path)
        seed(client, "serde", ["1.0.0"], age=10)

        entry = client.fetch_versions("serde")

        assert [v.version for v in entry.versions] == ["1.0.0"]
        mock_get.assert_not_called()

    @patch("registry.client.robust_get")
    def test_lookups_are_memoised(self, mock_get, tmp_path):
        mock_get.return_value = (200, {}, body("serde", "1.0.0"))
        client = make_client(tmp_path, ttl=0)
        client.fetch_versions("serde")
        client.fetch_versions("serde")
        assert mock_get.call_count == 1

    @patch("registry.client.robust_get")
    def test_not_modified_refreshes_stale_cache(self, mock_get, tmp_path):
        mock_get.return_value = (304, {}, "")
        client = make_client(tmp_path)
        seed(client, "serde", ["1.0.0"], age=3600)

        entry = client.fetch_versions("serde")

        assert [v.version for v in entry.versions] == ["1.0.0"]
        assert mock_get.call_args[1]["headers"] == {"If-None-Match": '"v1"'}
        assert client.cache.get_fresh("serde") is not None

    @patch("registry.client.robust_get")
    def test_stale_cache_used_when_unreachable(self, mock_get, tmp_path, caplog):
        mock_get.return_value = (0, {}, "Request failed after 1 attempts: timeout")
        client = make_client(tmp_path)
        seed(client, "serde", ["1.0.0", "1.0.5"], age=3600)

        with caplog.at_level(logging.WARNING):
            entry = client.fetch_versions("serde")

        assert [v.version for v in entry.versions] == ["1.0.0", "1.0.5"]
        assert "using cached index" in caplog.text

    @patch("registry.client.robust_get")
    def test_undecodable_cache_is_refetched(self, mock_get, tmp_path):
        mock_get.return_value = (200, {}, body("serde", "1.0.0"))
        client = make_client(tmp_path)
        path = client.cache.path_for("serde")
        os.makedirs(os.path.dirname(path))
        with open(path, "wb") as fh:
            fh.write(b"\xff\xfe truncated")

        entry = client.fetch_versions("serde")

        assert [v.version for v in entry.versions] == ["1.0.0"]
        mock_get.assert_called_once()
        assert client.cache.get("serde") is not None

    @patch("registry.client.robust_get")
    def test_unreachable_without_cache(self, mock_get, tmp_path):
        mock_get.return_value = (503, {}, "")
        with pytest.raises(RegistryUnreachable):
            make_client(tmp_path).fetch_versions("serde")

    @patch("registry.client.robust_get")
    def test_unknown_crate(self, mock_get, tmp_path):
        mock_get.return_value = (404, {}, "")
        with pytest.raises(PackageNotFound):
            make_client(tmp_path).fetch_versions("does-not-exist")


class TestNameVariants:
    """'-' / '_' fallbacks."""

    @patch("registry.client.robust_get")
    def test_variant_is_used(self, mock_get, tmp_path, caplog):
        def fake_get(url, headers=None):
            if url.endswith("/serde-json"):
                return 200, {}, body("serde-json", "1.0.0")
            return 404, {}, ""
        mock_get.side_effect = fake_get

        with caplog.at_level(logging.WARNING):
            entry = make_client(tmp_path).fetch_versions("serde_json")

        assert entry.name == "serde-json"
        assert "using `serde-json` instead" in caplog.text


class TestOffline:
    """--offline only consults the cache."""

    @patch("registry.client.robust_get")
    def test_offline_uses_stale_cache(self, mock_get, tmp_path):
        client = make_client(tmp_path, offline=True)
        seed(client, "serde", ["1.0.0"], age=10 ** 6)
        assert [v.version for v in client.fetch_versions("serde").versions] == ["1.0.0"]
        mock_get.assert_not_called()

    @patch("registry.client.robust_get")
    def test_offline_miss(self, mock_get, tmp_path):
        with pytest.raises(RegistryUnreachable):
            make_client(tmp_path, offline=True).fetch_versions("serde")
        mock_get.assert_not_called()


class TestPrefetch:
    """Concurrent lookups with remembered failures."""

    @patch("registry.client.robust_get")
    def test_prefetch_reports_failures(self, mock_get, tmp_path):
        def fake_get(url, headers=None):
            if url.endswith("/serde"):
                return 200, {}, body("serde", "1.0.0")
            if url.endswith("/rand"):
                return 200, {}, body("rand", "0.8.5")
            return 404, {}, ""
        mock_get.side_effect = fake_get
        client = make_client(tmp_path)

        outcome = client.prefetch(["serde", "rand", "nope", "serde"])

        assert outcome["serde"] is None
        assert outcome["rand"] is None
        assert isinstance(outcome["nope"], PackageNotFound)
        calls = mock_get.call_count
        assert client.fetch_versions("rand").versions[0].version == "0.8.5"
        with pytest.raises(PackageNotFound):
            client.fetch_versions("nope")
        assert mock_get.call_count == calls

    def test_prefetch_nothing(self, tmp_path):
        assert make_client(tmp_path).prefetch([]) == {}
