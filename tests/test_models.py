"""Tests for Pydantic models in crxpack.models."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from crxpack.models import (
    CRX_HEADER_SIZE,
    CrxPackage,
    ExtensionManifest,
    PackConfig,
    PipelineState,
    VerificationResult,
)

# ---------------------------------------------------------------------------
# PipelineState
# ---------------------------------------------------------------------------


class TestPipelineState:
    def test_order(self) -> None:
        assert [s.value for s in PipelineState] == [
            "unloaded",
            "loaded",
            "archived",
            "signed",
            "assembled",
        ]

    def test_is_string_enum(self) -> None:
        assert isinstance(PipelineState.loaded, str)


# ---------------------------------------------------------------------------
# ExtensionManifest
# ---------------------------------------------------------------------------


class TestExtensionManifest:
    def test_version_only(self) -> None:
        manifest = ExtensionManifest.model_validate({"version": "1.0"})
        assert manifest.version == "1.0"
        assert manifest.name is None

    def test_extra_keys_kept(self) -> None:
        manifest = ExtensionManifest.model_validate(
            {"version": "1.0", "manifest_version": 2, "permissions": ["tabs"]}
        )
        data = json.loads(manifest.canonical_bytes())
        assert data["manifest_version"] == 2
        assert data["permissions"] == ["tabs"]

    def test_canonical_bytes_compact_and_sorted(self) -> None:
        manifest = ExtensionManifest.model_validate({"version": "1.0", "name": "X"})
        assert manifest.canonical_bytes() == b'{"name":"X","version":"1.0"}'

    def test_canonical_bytes_omit_missing_fields(self) -> None:
        manifest = ExtensionManifest.model_validate({"version": "1.0"})
        assert manifest.canonical_bytes() == b'{"version":"1.0"}'

    def test_canonical_bytes_keep_unicode(self) -> None:
        manifest = ExtensionManifest.model_validate({"name": "Café"})
        assert manifest.canonical_bytes() == '{"name":"Café"}'.encode("utf-8")

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExtensionManifest.model_validate(["version", "1.0"])

    def test_non_string_version_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExtensionManifest.model_validate({"version": {"major": 1}})


# ---------------------------------------------------------------------------
# CrxPackage
# ---------------------------------------------------------------------------


class TestCrxPackage:
    def test_total_size(self) -> None:
        package = CrxPackage(public_key=b"k" * 10, signature=b"s" * 20, contents=b"z" * 30)
        assert package.total_size == CRX_HEADER_SIZE + 60

    def test_header_layout(self) -> None:
        package = CrxPackage(public_key=b"k" * 10, signature=b"s" * 20, contents=b"z")
        assert package.header() == (
            b"Cr24" + b"\x02\x00\x00\x00" + b"\x0a\x00\x00\x00" + b"\x14\x00\x00\x00"
        )

    def test_header_is_16_bytes(self) -> None:
        assert CRX_HEADER_SIZE == 16

    @pytest.mark.parametrize("field", ["public_key", "signature", "contents"])
    def test_empty_segment_rejected(self, field: str) -> None:
        values = {"public_key": b"k", "signature": b"s", "contents": b"z", field: b""}
        with pytest.raises(ValidationError):
            CrxPackage(**values)


# ---------------------------------------------------------------------------
# PackConfig
# ---------------------------------------------------------------------------


class TestPackConfig:
    def test_defaults(self) -> None:
        config = PackConfig()
        assert config.scratch_root == Path(tempfile.gettempdir())
        assert config.key_file_name == "key.pem"
        assert config.manifest_name == "manifest.json"
        assert config.compression_level == 6
        assert config.openssl_binary == "openssl"
        assert config.key_password is None

    def test_scratch_root_coerced_to_path(self) -> None:
        config = PackConfig(scratch_root="/var/tmp/crx")
        assert config.scratch_root == Path("/var/tmp/crx")

    @pytest.mark.parametrize("level", [-1, 10])
    def test_compression_level_bounds(self, level: int) -> None:
        with pytest.raises(ValidationError):
            PackConfig(compression_level=level)

    def test_empty_key_file_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PackConfig(key_file_name="")


# ---------------------------------------------------------------------------
# VerificationResult
# ---------------------------------------------------------------------------


class TestVerificationResult:
    def test_valid_defaults(self) -> None:
        result = VerificationResult(valid=True, app_id="a" * 32)
        assert result.error is None

    def test_round_trip_json(self) -> None:
        result = VerificationResult(valid=False, error="bad")
        assert VerificationResult.model_validate_json(result.model_dump_json()) == result
