"""crxpack quickstart — build, inspect, and verify a CRX package.

Run this file directly to verify your installation:

    python examples/quickstart.py

Everything happens inside a temporary directory that is removed afterwards.
"""

from __future__ import annotations

import asyncio
import io
import json
import tempfile
import zipfile
from pathlib import Path

from crxpack import (
    ConfigurationError,
    CryptographyKeyDeriver,
    KeyManager,
    PackageAssembler,
    PackageVerifier,
    PackagingPipeline,
    PackConfig,
)


# ---------------------------------------------------------------------------
# Demo 1 — pack an extension directory
# ---------------------------------------------------------------------------

async def demo_pack(tmp: Path) -> bytes:
    """Pack a two-file extension and print its id."""

    print("\n=== Demo 1: Pack ===")

    source = tmp / "hello-extension"
    source.mkdir()
    (source / "manifest.json").write_text(
        json.dumps({"name": "Hello", "version": "1.0", "manifest_version": 2}),
        encoding="utf-8",
    )
    (source / "background.js").write_text("console.log('hello');", encoding="utf-8")

    keypair = KeyManager().generate_keypair()
    # The key lives beside the sources but is never archived
    (source / "key.pem").write_bytes(keypair.private_key)

    pipeline = PackagingPipeline(
        source,
        keypair.private_key,
        config=PackConfig(scratch_root=tmp / "scratch"),
        key_deriver=CryptographyKeyDeriver(),
        codebase="https://example.com/hello.crx",
    )
    try:
        crx = await pipeline.pack()
        print(f"  Packed {len(crx):,} bytes, state={pipeline.state.value}")
        print(f"  App ID : {pipeline.generate_app_id()}")
        print(pipeline.generate_update_xml().decode("utf-8"))
    finally:
        await pipeline.destroy()
    return crx


# ---------------------------------------------------------------------------
# Demo 2 — inspect and verify
# ---------------------------------------------------------------------------

def demo_inspect(crx: bytes) -> None:
    """Split the container and list what the archive holds."""

    print("\n=== Demo 2: Inspect & Verify ===")

    package = PackageAssembler().parse(crx)
    with zipfile.ZipFile(io.BytesIO(package.contents)) as zf:
        print(f"  Entries : {zf.namelist()}")
    print(f"  Key     : {len(package.public_key)} bytes")
    print(f"  Sig     : {len(package.signature)} bytes")

    result = PackageVerifier().verify(crx)
    print(f"  Valid   : {result.valid}")


# ---------------------------------------------------------------------------
# Demo 3 — update.xml needs a codebase
# ---------------------------------------------------------------------------

async def demo_missing_codebase(tmp: Path) -> None:
    print("\n=== Demo 3: Missing codebase ===")

    pipeline = PackagingPipeline(tmp / "hello-extension", b"", config=PackConfig())
    try:
        pipeline.generate_update_xml()
    except ConfigurationError as exc:
        print(f"  ConfigurationError: {exc}")


async def main() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        crx = await demo_pack(tmp)
        demo_inspect(crx)
        await demo_missing_codebase(tmp)


if __name__ == "__main__":
    asyncio.run(main())
