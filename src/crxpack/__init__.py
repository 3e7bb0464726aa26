"""crxpack: build signed CRX2 packages from a directory tree."""

import logging

from crxpack.core import (
    ContentArchiver,
    CryptographyKeyDeriver,
    KeyDeriver,
    KeyManager,
    OpenSSLKeyDeriver,
    PackageAssembler,
    PackageVerifier,
    Signer,
    derive_app_id,
)
from crxpack.errors import (
    ArchiveError,
    AssemblyPreconditionError,
    ConfigurationError,
    ContainerFormatError,
    CrxError,
    KeyDerivationError,
    SigningError,
    TreeLoadError,
)
from crxpack.models import (
    CrxPackage,
    ExtensionManifest,
    KeyPair,
    LoadedTree,
    PackConfig,
    PipelineState,
    VerificationResult,
)
from crxpack.pipeline import PackagingPipeline
from crxpack.update import render_update_xml

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ArchiveError",
    "AssemblyPreconditionError",
    "ConfigurationError",
    "ContainerFormatError",
    "ContentArchiver",
    "CrxError",
    "CrxPackage",
    "CryptographyKeyDeriver",
    "ExtensionManifest",
    "KeyDerivationError",
    "KeyDeriver",
    "KeyManager",
    "KeyPair",
    "LoadedTree",
    "OpenSSLKeyDeriver",
    "PackConfig",
    "PackageAssembler",
    "PackageVerifier",
    "PackagingPipeline",
    "PipelineState",
    "Signer",
    "SigningError",
    "TreeLoadError",
    "VerificationResult",
    "derive_app_id",
    "render_update_xml",
]
