"""Tests for the format-preserving manifest document."""

import pytest

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from common.errors import DocumentParseError
from manifest.document import ManifestDocument, new_array, new_inline_table

MANIFEST = (
    "# top comment\n"
    "[package]\n"
    'name = "demo"   # the name\n'
    "version = '0.1.0'\n"
    "\n"
    "[dependencies]\n"
    'serde = { version = "1.0", features = ["derive"] }  # keep\n'
    'log = "0.4"\n'
    "\n"
    "[dev-dependencies]\n"
    'rand = "0.8"\n'
)


class TestRoundTrip:
    """Unedited documents serialise back byte for byte."""

    @pytest.mark.parametrize("text", [
        MANIFEST,
        "[package]\r\nname = 'x'\r\nversion = \"1.0.0\"\r\n",
        "[dependencies]\nfoo = \"1\"",
        "",
    ])
    def test_round_trip(self, text):
        doc = ManifestDocument.parse(text)
        assert doc.to_string() == text
        assert not doc.is_modified

    def test_parse_error(self):
        with pytest.raises(DocumentParseError):
            ManifestDocument.parse("[package\nname = 1\n")

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(DocumentParseError):
            ManifestDocument.load(str(tmp_path / "Cargo.toml"))

    def test_load_invalid_utf8(self, tmp_path):
        path = tmp_path / "Cargo.toml"
        path.write_bytes(b'[package]\nname = "x\xff"\n')
        with pytest.raises(DocumentParseError):
            ManifestDocument.load(str(path))


class TestNavigation:
    """Tables and entries by path."""

    def test_get_table_and_entry(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert doc.get_table(("dependencies",)) is not None
        assert doc.get_table(("build-dependencies",)) is None
        assert doc.get_entry(("dependencies",), "log") == "0.4"
        assert doc.get_entry(("dependencies",), "missing") is None
        assert [name for name, _ in doc.iter_entries(("dependencies",))] == ["serde", "log"]

    def test_scalar_is_not_a_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert doc.get_table(("package", "name")) is None


class TestEdits:
    """Primitive edits change only the lines they touch."""

    def test_replace_scalar_keeps_comment_and_quotes(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert doc.replace_scalar(("package",), "version", "0.2.0")
        text = doc.to_string()
        assert "version = '0.2.0'\n" in text
        assert text.replace("version = '0.2.0'", "version = '0.1.0'") == MANIFEST

    def test_replace_scalar_is_idempotent(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.replace_scalar(("dependencies",), "log", "0.4.20")
        once = doc.to_string()
        assert not doc.replace_scalar(("dependencies",), "log", "0.4.20")
        assert doc.to_string() == once
        assert once.replace('log = "0.4.20"', 'log = "0.4"') == MANIFEST

    def test_insert_into_existing_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert doc.insert_entry(("dependencies",), "anyhow", "1.0.86")
        text = doc.to_string()
        assert 'anyhow = "1.0.86"' in text.splitlines()
        assert text.index("anyhow") < text.index("[dev-dependencies]")
        assert tomllib.loads(text)["dependencies"]["anyhow"] == "1.0.86"

    def test_add_then_remove_restores_text(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.insert_entry(("dev-dependencies",), "proptest", "1")
        assert doc.is_modified
        assert doc.remove_entry(("dev-dependencies",), "proptest")
        assert doc.to_string() == MANIFEST

    @pytest.mark.parametrize("path", [
        ("dependencies",),
        ("build-dependencies",),
        ("target", "cfg(unix)", "build-dependencies"),
    ])
    def test_add_then_remove_created_table_restores_text(self, path):
        text = '[package]\nname = "d"\nversion = "0.1.0"\n'
        doc = ManifestDocument.parse(text)
        doc.insert_entry(path, "serde", "1.0")
        assert doc.is_modified
        assert doc.remove_entry(path, "serde")
        assert doc.to_string() == text
        assert not doc.is_modified

    def test_add_then_remove_created_table_keeps_crlf(self):
        text = '[package]\r\nname = "d"\r\n'
        doc = ManifestDocument.parse(text)
        doc.insert_entry(("dependencies",), "serde", "1.0")
        doc.remove_entry(("dependencies",), "serde")
        assert doc.to_string().startswith(text)
        assert doc.to_string().endswith('"d"\r\n')

    def test_remove_table_in_the_middle_keeps_trailing_content(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.remove_entry(("dependencies",), "serde")
        doc.remove_entry(("dependencies",), "log")
        text = doc.to_string()
        assert text.startswith("# top comment\n[package]\n")
        assert text.endswith('[dev-dependencies]\nrand = "0.8"\n')
        assert "[dependencies]" not in text

    def test_insert_creates_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.insert_entry(("build-dependencies",), "cc", "1.0")
        text = doc.to_string()
        assert text.startswith(MANIFEST)
        data = tomllib.loads(text)
        assert data["build-dependencies"] == {"cc": "1.0"}

    def test_insert_into_target_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.insert_entry(("target", "cfg(unix)", "dependencies"), "libc", "0.2")
        data = tomllib.loads(doc.to_string())
        assert data["target"]["cfg(unix)"]["dependencies"] == {"libc": "0.2"}
        assert "[target]" not in doc.to_string()

    def test_missing_final_newline_gains_one(self):
        doc = ManifestDocument.parse('[dependencies]\nfoo = "1"')
        doc.insert_entry(("dev-dependencies",), "bar", "2")
        text = doc.to_string()
        assert text.startswith('[dependencies]\nfoo = "1"\n')
        assert tomllib.loads(text) == {"dependencies": {"foo": "1"}, "dev-dependencies": {"bar": "2"}}

    def test_remove_drops_emptied_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.remove_entry(("dev-dependencies",), "rand")
        data = tomllib.loads(doc.to_string())
        assert "dev-dependencies" not in data
        assert data["dependencies"]["log"] == "0.4"

    def test_remove_walks_up_target_tables(self):
        text = MANIFEST + "\n[target.'cfg(windows)'.dependencies]\nwinapi = \"0.3\"\n"
        doc = ManifestDocument.parse(text)
        doc.remove_entry(("target", "cfg(windows)", "dependencies"), "winapi")
        assert "target" not in tomllib.loads(doc.to_string())

    def test_remove_missing(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert not doc.remove_entry(("dependencies",), "missing")
        assert not doc.remove_entry(("build-dependencies",), "cc")
        assert not doc.is_modified

    def test_inline_keys(self):
        doc = ManifestDocument.parse(MANIFEST)
        assert doc.set_inline_key(("dependencies",), "serde", "version", "1.0.200")
        assert not doc.set_inline_key(("dependencies",), "serde", "version", "1.0.200")
        assert doc.remove_inline_key(("dependencies",), "serde", "features")
        text = doc.to_string()
        assert "# keep" in text
        assert tomllib.loads(text)["dependencies"]["serde"] == {"version": "1.0.200"}

    def test_inline_key_on_scalar(self):
        doc = ManifestDocument.parse(MANIFEST)
        with pytest.raises(DocumentParseError):
            doc.set_inline_key(("dependencies",), "log", "version", "0.4.1")

    def test_replace_with_inline_table(self):
        doc = ManifestDocument.parse(MANIFEST)
        doc.replace_scalar(("dependencies",), "log", new_inline_table([("version", "0.4"), ("optional", True)]))
        data = tomllib.loads(doc.to_string())
        assert data["dependencies"]["log"] == {"version": "0.4", "optional": True}

    def test_new_inline_table_is_padded(self):
        table = new_inline_table([("version", "0.4"), ("optional", True), ("features", new_array(["std"]))])
        assert table.as_string() == '{ version = "0.4", optional = true, features = ["std"] }'
