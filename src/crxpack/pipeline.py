"""End-to-end packaging: load a tree, archive, sign, and assemble a CRX."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import shutil
from pathlib import Path

from crxpack.core import (
    ContentArchiver,
    KeyDeriver,
    OpenSSLKeyDeriver,
    PackageAssembler,
    Signer,
    derive_app_id,
)
from crxpack.errors import ArchiveError, ConfigurationError, TreeLoadError
from crxpack.models import (
    CrxPackage,
    ExtensionManifest,
    LoadedTree,
    PackConfig,
    PipelineState,
)
from crxpack.update import render_update_xml

logger = logging.getLogger(__name__)


class PackagingPipeline:
    """Package one source directory into a signed CRX2 container.

    Each run moves through ``unloaded -> loaded -> archived -> signed ->
    assembled``. Stages hand their output to the next one directly; a failure
    at any stage resets the pipeline to ``unloaded`` and re-raises the
    original error.

    The source tree is copied into a scratch directory unique to this
    instance. It is left on disk until :meth:`destroy` is awaited.

    Example::

        pipeline = PackagingPipeline("my-extension", private_pem)
        try:
            crx = await pipeline.pack()
        finally:
            await pipeline.destroy()
    """

    def __init__(
        self,
        root_directory: str | Path,
        private_key: bytes,
        *,
        config: PackConfig | None = None,
        key_deriver: KeyDeriver | None = None,
        codebase: str | None = None,
        app_id: str | None = None,
    ) -> None:
        self.root_directory = Path(root_directory)
        self.private_key = private_key
        self.config = config or PackConfig()
        self.codebase = codebase
        self.app_id = app_id
        self.path = self.config.scratch_root / f"crx-{secrets.token_hex(8)}"

        self._archiver = ContentArchiver(
            key_file_name=self.config.key_file_name,
            compression_level=self.config.compression_level,
        )
        self._signer = Signer(
            key_deriver
            or OpenSSLKeyDeriver(
                binary=self.config.openssl_binary, password=self.config.key_password
            )
        )
        self._assembler = PackageAssembler()
        self._state = PipelineState.unloaded
        self._tree: LoadedTree | None = None
        self._public_key: bytes | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def manifest(self) -> ExtensionManifest | None:
        return self._tree.manifest if self._tree is not None else None

    @property
    def public_key(self) -> bytes | None:
        """DER public key from the last successful :meth:`pack`."""
        return self._public_key

    def _reset(self) -> None:
        self._state = PipelineState.unloaded
        self._tree = None

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def load(self) -> LoadedTree:
        """Copy the source tree into scratch space and read its manifest.

        A pipeline that is already loaded returns its existing tree.
        """
        if self._tree is not None:
            return self._tree

        if not self.root_directory.is_dir():
            raise TreeLoadError(
                f"Source directory does not exist or is not a directory: "
                f"{self.root_directory}"
            )
        try:
            if self.path.exists():
                # left behind by an aborted run of this instance
                await asyncio.to_thread(shutil.rmtree, self.path)
            await asyncio.to_thread(shutil.copytree, self.root_directory, self.path)
        except OSError as exc:
            raise TreeLoadError(
                f"Could not copy {self.root_directory} to {self.path}: {exc}"
            ) from exc

        manifest_path = self.path / self.config.manifest_name
        try:
            raw = json.loads(manifest_path.read_text(encoding="utf-8"))
            manifest = ExtensionManifest.model_validate(raw)
        except (OSError, ValueError) as exc:
            raise TreeLoadError(f"Could not read manifest {manifest_path}: {exc}") from exc

        self._tree = LoadedTree(root=self.path, manifest=manifest)
        self._state = PipelineState.loaded
        logger.info("Loaded %s into %s", self.root_directory, self.path)
        return self._tree

    async def _archive(self, tree: LoadedTree) -> bytes:
        manifest_path = tree.root / self.config.manifest_name
        try:
            await asyncio.to_thread(
                manifest_path.write_bytes, tree.manifest.canonical_bytes()
            )
        except OSError as exc:
            raise ArchiveError(f"Could not write {manifest_path}: {exc}") from exc
        return await self._archiver.archive(tree.root)

    async def _sign(self, contents: bytes) -> CrxPackage:
        public_key = await self._signer.derive_public_key(self.private_key)
        signature = self._signer.sign(
            contents, self.private_key, password=self.config.key_password
        )
        return CrxPackage(public_key=public_key, signature=signature, contents=contents)

    async def pack(self) -> bytes:
        """Run every stage and return the finished container bytes."""
        try:
            tree = await self.load()
            contents = await self._archive(tree)
            self._state = PipelineState.archived
            package = await self._sign(contents)
            self._state = PipelineState.signed
            crx = self._assembler.assemble(
                package.public_key, package.signature, package.contents
            )
        except Exception as exc:
            logger.error("Packaging %s failed: %s", self.root_directory, exc)
            self._reset()
            raise

        self._public_key = package.public_key
        self._state = PipelineState.assembled
        logger.info("Packed %s (%d bytes)", self.root_directory, len(crx))
        return crx

    # ------------------------------------------------------------------
    # Derived outputs
    # ------------------------------------------------------------------

    def generate_app_id(self) -> str:
        """Extension id derived from the last packed public key."""
        if self._public_key is None:
            raise ConfigurationError("No public key available; call pack() first.")
        return derive_app_id(self._public_key)

    def generate_update_xml(self) -> bytes:
        """Render ``update.xml`` for the loaded manifest's version."""
        if not self.codebase:
            raise ConfigurationError("No URL provided for update.xml.")
        if self._tree is None:
            raise ConfigurationError("No manifest loaded; call load() or pack() first.")
        app_id = self.app_id or self.generate_app_id()
        return render_update_xml(app_id, self.codebase, self._tree.manifest.version)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def destroy(self) -> None:
        """Remove this pipeline's scratch directory."""
        if self.path.exists():
            await asyncio.to_thread(shutil.rmtree, self.path)
            logger.info("Removed scratch directory %s", self.path)
        self._reset()


__all__ = ["PackagingPipeline"]
