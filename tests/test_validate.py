"""Tests for post-edit validation."""

import pytest

from common.errors import ValidationError
from manifest.validate import find_duplicates, validate_manifest


class TestValidateManifest:
    """Re-parse and duplicate detection."""

    def test_valid_manifest(self):
        data = validate_manifest('[dependencies]\nserde = "1"\n')
        assert data["dependencies"]["serde"] == "1"

    def test_invalid_toml(self):
        with pytest.raises(ValidationError):
            validate_manifest("[dependencies\n")

    def test_new_duplicate_is_rejected(self):
        original = '[dependencies]\nserde_json = "1"\n'
        edited = '[dependencies]\nserde_json = "1"\nserde-json = "1"\n'
        with pytest.raises(ValidationError) as exc:
            validate_manifest(edited, original, "Cargo.toml")
        assert "serde-json" in str(exc.value)

    def test_existing_duplicate_is_tolerated(self):
        text = '[dependencies]\nserde_json = "1"\nSerde-Json = "1"\nlog = "0.4"\n'
        validate_manifest(text.replace('"0.4"', '"0.4.20"'), text)

    def test_renames_are_not_duplicates(self):
        text = (
            '[dependencies]\n'
            'rand = "0.8"\n'
            'rand_old = { version = "0.7", package = "rand" }\n'
            'rand-old = { version = "0.6", package = "rand" }\n'
        )
        assert find_duplicates(validate_manifest(text)) == set()

    def test_target_and_workspace_tables(self):
        text = (
            "[target.'cfg(unix)'.dependencies]\n"
            'libc = "0.2"\n'
            'Libc = "0.2"\n'
            '\n[workspace.dependencies]\n'
            'a_b = "1"\n'
            'a-b = "1"\n'
        )
        with pytest.raises(ValidationError):
            validate_manifest(text)
