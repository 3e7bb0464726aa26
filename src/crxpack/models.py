"""Pydantic models for crxpack."""

from __future__ import annotations

import json
import struct
import tempfile
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

CRX_MAGIC = b"Cr24"
CRX_VERSION = 2
# magic, version, public key length, signature length
CRX_HEADER = struct.Struct("<4sIII")
CRX_HEADER_SIZE = CRX_HEADER.size


class PipelineState(str, Enum):
    """Stages of a packaging run, in order."""

    unloaded = "unloaded"
    loaded = "loaded"
    archived = "archived"
    signed = "signed"
    assembled = "assembled"


class ExtensionManifest(BaseModel):
    """The ``manifest.json`` descriptor of the packaged tree.

    Only ``name`` and ``version`` are read by crxpack; every other key is kept
    verbatim so the manifest written into the package matches the source.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    version: str | None = None

    def canonical_bytes(self) -> bytes:
        """Compact, key-sorted JSON encoding written into the package."""
        unset = {name for name in ("name", "version") if getattr(self, name) is None}
        data = self.model_dump(mode="json", exclude=unset)
        return json.dumps(
            data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")


class KeyPair(BaseModel):
    """A PEM private key and the DER public key derived from it."""

    private_key: bytes
    public_key: bytes


class CrxPackage(BaseModel):
    """The three variable-length segments of a CRX2 container."""

    public_key: bytes = Field(min_length=1)
    signature: bytes = Field(min_length=1)
    contents: bytes = Field(min_length=1)

    @property
    def total_size(self) -> int:
        return (
            CRX_HEADER_SIZE
            + len(self.public_key)
            + len(self.signature)
            + len(self.contents)
        )

    def header(self) -> bytes:
        """The 16-byte header describing this package's segments."""
        return CRX_HEADER.pack(
            CRX_MAGIC, CRX_VERSION, len(self.public_key), len(self.signature)
        )


class LoadedTree(BaseModel):
    """A source tree copied into scratch space, with its parsed manifest."""

    root: Path
    manifest: ExtensionManifest


class VerificationResult(BaseModel):
    """Outcome of checking a container's signature against its own key."""

    valid: bool
    app_id: str | None = None
    error: str | None = None


class PackConfig(BaseModel):
    """Runtime settings for a packaging run."""

    scratch_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    key_file_name: str = Field(default="key.pem", min_length=1)
    manifest_name: str = Field(default="manifest.json", min_length=1)
    compression_level: int = Field(default=6, ge=0, le=9)
    openssl_binary: str = Field(default="openssl", min_length=1)
    key_password: bytes | None = None


__all__ = [
    "CRX_HEADER",
    "CRX_HEADER_SIZE",
    "CRX_MAGIC",
    "CRX_VERSION",
    "CrxPackage",
    "ExtensionManifest",
    "KeyPair",
    "LoadedTree",
    "PackConfig",
    "PipelineState",
    "VerificationResult",
]
