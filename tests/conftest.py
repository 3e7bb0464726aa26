"""Shared test fixtures for crxpack."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from crxpack.core import CryptographyKeyDeriver, KeyManager
from crxpack.models import KeyPair, PackConfig
from crxpack.pipeline import PackagingPipeline

# ---------------------------------------------------------------------------
# Key fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def key_manager() -> KeyManager:
    """A shared KeyManager instance (stateless, safe to share)."""
    return KeyManager()


@pytest.fixture(scope="session")
def rsa_keypair(key_manager: KeyManager) -> KeyPair:
    """PEM private key and DER public key for a 2048-bit RSA key."""
    return key_manager.generate_keypair()


@pytest.fixture(scope="session")
def other_rsa_keypair(key_manager: KeyManager) -> KeyPair:
    """A second, unrelated RSA key pair."""
    return key_manager.generate_keypair()


# ---------------------------------------------------------------------------
# Source-tree fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def extension_dir(tmp_path: Path) -> Path:
    """A small extension source tree.

    Structure:
        manifest.json — {"name": "Test", "version": "1.0"}
        background.js
        icons/
            icon16.png — 16 bytes
    """
    root = tmp_path / "extension"
    root.mkdir()
    (root / "manifest.json").write_text(
        json.dumps({"name": "Test", "version": "1.0"}), encoding="utf-8"
    )
    (root / "background.js").write_text("console.log('hi');", encoding="utf-8")
    icons = root / "icons"
    icons.mkdir()
    (icons / "icon16.png").write_bytes(bytes(range(16)))
    return root


@pytest.fixture()
def minimal_extension_dir(tmp_path: Path) -> Path:
    """The bare tree: a version-only manifest and a.txt containing 'hello'."""
    root = tmp_path / "minimal"
    root.mkdir()
    (root / "manifest.json").write_text('{"version":"1.0"}', encoding="utf-8")
    (root / "a.txt").write_text("hello", encoding="utf-8")
    return root


@pytest.fixture()
def scratch_root(tmp_path: Path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture()
def pack_config(scratch_root: Path) -> PackConfig:
    return PackConfig(scratch_root=scratch_root)


@pytest.fixture()
def make_pipeline(rsa_keypair: KeyPair, pack_config: PackConfig):
    """Factory for pipelines that derive keys in-process."""

    def _make(root: Path, **kwargs) -> PackagingPipeline:
        kwargs.setdefault("config", pack_config)
        kwargs.setdefault("key_deriver", CryptographyKeyDeriver())
        return PackagingPipeline(root, rsa_keypair.private_key, **kwargs)

    return _make
