"""Tests for the shared logging, HTTP and file helpers."""

import logging
import os
import stat
from unittest.mock import MagicMock, patch

import requests

from common.fs import atomic_write_text, read_text
from common.http_client import robust_get
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants


class TestLoggingUtils:
    """Structured logging helpers."""

    def test_extra_context_drops_none_and_prefixes_reserved(self):
        extra = extra_context(event="x", name="serde", outcome=None)
        assert extra == {"event": "x", "ctx_name": "serde"}

    def test_safe_url(self):
        assert safe_url("https://user:pw@index.example:8443/se/rd/serde?token=1#frag") == \
            "https://index.example:8443/se/rd/serde"
        assert safe_url("https://index.crates.io/config.json") == "https://index.crates.io/config.json"

    def test_timer(self):
        with Timer() as t:
            pass
        assert t.duration_ms() >= 0

    def test_is_debug_enabled(self):
        logger = logging.getLogger("crate_edit.tests.debug")
        logger.setLevel(logging.DEBUG)
        assert is_debug_enabled(logger)
        logger.setLevel(logging.INFO)
        assert not is_debug_enabled(logger)


def _response(status, text="", headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = headers or {}
    return resp


class TestRobustGet:
    """Retries and the (status, headers, text) contract."""

    @patch("common.http_client.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = _response(200, "body", {"ETag": "abc"})
        status, headers, text = robust_get("https://index.example/se/rd/serde")
        assert (status, headers, text) == (200, {"ETag": "abc"}, "body")
        assert mock_get.call_args.kwargs["headers"]["User-Agent"] == Constants.USER_AGENT

    @patch("common.http_client.time.sleep")
    @patch("common.http_client.requests.get")
    def test_timeouts_exhaust_retries(self, mock_get, mock_sleep, monkeypatch):
        monkeypatch.setattr(Constants, "HTTP_RETRY_MAX", 3)
        mock_get.side_effect = requests.Timeout()
        status, headers, text = robust_get("https://index.example/se/rd/serde")
        assert status == 0
        assert headers == {}
        assert "timeout" in text
        assert mock_get.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("common.http_client.time.sleep")
    @patch("common.http_client.requests.get")
    def test_server_error_retried(self, mock_get, mock_sleep, monkeypatch):
        monkeypatch.setattr(Constants, "HTTP_RETRY_MAX", 2)
        mock_get.side_effect = [_response(503), _response(200, "ok")]
        assert robust_get("https://index.example/x")[0] == 200
        mock_sleep.assert_called_once()

    @patch("common.http_client.time.sleep")
    @patch("common.http_client.requests.get")
    def test_last_server_error_returned(self, mock_get, mock_sleep, monkeypatch):
        monkeypatch.setattr(Constants, "HTTP_RETRY_MAX", 2)
        mock_get.return_value = _response(502, "bad gateway")
        assert robust_get("https://index.example/x") == (502, {}, "bad gateway")

    @patch("common.http_client.requests.get")
    def test_not_found_not_retried(self, mock_get, monkeypatch):
        monkeypatch.setattr(Constants, "HTTP_RETRY_MAX", 3)
        mock_get.return_value = _response(404)
        assert robust_get("https://index.example/x")[0] == 404
        assert mock_get.call_count == 1


class TestAtomicWrite:
    """Write-to-temp-then-rename."""

    def test_newlines_written_verbatim(self, tmp_path):
        target = tmp_path / "Cargo.toml"
        atomic_write_text(str(target), "[package]\r\nname = \"x\"\r\n")
        assert read_text(str(target)) == "[package]\r\nname = \"x\"\r\n"
        assert [p.name for p in tmp_path.iterdir()] == ["Cargo.toml"]

    def test_mode_preserved(self, tmp_path):
        target = tmp_path / "Cargo.toml"
        target.write_text("old", encoding="utf-8")
        os.chmod(target, 0o640)
        atomic_write_text(str(target), "new")
        assert read_text(str(target)) == "new"
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o640
