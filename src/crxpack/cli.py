"""CLI entry point for crxpack."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from crxpack.core import (
    CryptographyKeyDeriver,
    KeyDeriver,
    KeyManager,
    OpenSSLKeyDeriver,
    PackageAssembler,
    PackageVerifier,
    derive_app_id,
)
from crxpack.errors import CrxError
from crxpack.models import CRX_HEADER_SIZE, CRX_VERSION, PackConfig
from crxpack.pipeline import PackagingPipeline
from crxpack.update import render_update_xml

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _key_deriver(name: str, config: PackConfig) -> KeyDeriver:
    if name == "openssl":
        return OpenSSLKeyDeriver(
            binary=config.openssl_binary, password=config.key_password
        )
    return CryptographyKeyDeriver(password=config.key_password)


def _fail(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


async def _run_pack(
    pipeline: PackagingPipeline, keep_scratch: bool, with_update_xml: bool
) -> tuple[bytes, bytes | None]:
    try:
        crx = await pipeline.pack()
        update_xml = pipeline.generate_update_xml() if with_update_xml else None
    finally:
        if not keep_scratch:
            await pipeline.destroy()
    return crx, update_xml


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option()
@click.option("-v", "--verbose", is_flag=True, help="Log every packaging step.")
def main(verbose: bool) -> None:
    """crxpack — build signed CRX packages from a directory."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command("keygen")
@click.option(
    "--output",
    default="key.pem",
    show_default=True,
    metavar="PATH",
    help="Where to write the PEM private key.",
)
@click.option("--key-size", default=2048, show_default=True, type=int)
def keygen_command(output: str, key_size: int) -> None:
    """Generate an RSA private key for signing packages."""
    km = KeyManager()
    try:
        keypair = km.generate_keypair(key_size=key_size)
        km.save_private_key(keypair.private_key, output)
    except (ValueError, OSError) as exc:
        _fail(exc)
    click.echo(f"Private key written to '{output}'")
    click.echo(f"  App ID: {derive_app_id(keypair.public_key)}")


@main.command("pack")
@click.option(
    "--source",
    required=True,
    metavar="DIR",
    help="Extension directory containing manifest.json.",
)
@click.option("--key", required=True, metavar="PATH", help="PEM private key file.")
@click.option(
    "--output",
    default=None,
    metavar="PATH",
    help="Where to write the .crx file (default: <source name>.crx).",
)
@click.option(
    "--scratch-root",
    default=None,
    metavar="DIR",
    help="Parent directory for the per-run working copy.",
)
@click.option(
    "--key-deriver",
    type=click.Choice(["openssl", "cryptography"], case_sensitive=False),
    default="openssl",
    show_default=True,
    help="How to derive the public key from the private key.",
)
@click.option("--codebase", default=None, metavar="URL", help="URL of the .crx file.")
@click.option(
    "--update-xml",
    "update_xml_path",
    default=None,
    metavar="PATH",
    help="Also write update.xml here (requires --codebase).",
)
@click.option("--keep-scratch", is_flag=True, help="Leave the working copy on disk.")
def pack_command(
    source: str,
    key: str,
    output: str | None,
    scratch_root: str | None,
    key_deriver: str,
    codebase: str | None,
    update_xml_path: str | None,
    keep_scratch: bool,
) -> None:
    """Pack a directory into a signed CRX file."""
    if update_xml_path and not codebase:
        raise click.UsageError("--update-xml requires --codebase")

    config = PackConfig() if scratch_root is None else PackConfig(scratch_root=Path(scratch_root))
    out_path = Path(output) if output else Path(f"{Path(source).resolve().name}.crx")
    try:
        private_key = KeyManager().load_private_key(key)
        pipeline = PackagingPipeline(
            source,
            private_key,
            config=config,
            key_deriver=_key_deriver(key_deriver.lower(), config),
            codebase=codebase,
        )
        crx, update_xml = asyncio.run(
            _run_pack(pipeline, keep_scratch, update_xml_path is not None)
        )
        out_path.write_bytes(crx)
        if update_xml is not None:
            Path(update_xml_path).write_bytes(update_xml)
    except (CrxError, OSError) as exc:
        _fail(exc)

    click.echo(f"Package written to: {out_path}")
    click.echo(f"  App ID : {pipeline.generate_app_id()}")
    click.echo(f"  Size   : {len(crx):,} bytes")
    if update_xml is not None:
        click.echo(f"  Update : {update_xml_path}")


@main.command("appid")
@click.option("--key", required=True, metavar="PATH", help="PEM private key file.")
def appid_command(key: str) -> None:
    """Print the extension id for a private key."""
    try:
        private_key = KeyManager().load_private_key(key)
        public_key = asyncio.run(CryptographyKeyDeriver().derive_public_key(private_key))
    except (CrxError, OSError) as exc:
        _fail(exc)
    click.echo(derive_app_id(public_key))


@main.command("update-xml")
@click.option("--key", default=None, metavar="PATH", help="PEM private key file.")
@click.option("--app-id", default=None, help="Use this id instead of deriving one.")
@click.option("--codebase", default=None, metavar="URL", help="URL of the .crx file.")
@click.option("--version", "version", required=True, help="Extension version.")
@click.option("--output", default=None, metavar="PATH", help="Write here instead of stdout.")
def update_xml_command(
    key: str | None,
    app_id: str | None,
    codebase: str | None,
    version: str,
    output: str | None,
) -> None:
    """Render an update.xml document."""
    if app_id is None and key is None:
        raise click.UsageError("Either --key or --app-id is required")
    try:
        if app_id is None:
            private_key = KeyManager().load_private_key(key)
            public_key = asyncio.run(
                CryptographyKeyDeriver().derive_public_key(private_key)
            )
            app_id = derive_app_id(public_key)
        document = render_update_xml(app_id, codebase, version)
        if output:
            Path(output).write_bytes(document)
    except (CrxError, OSError) as exc:
        _fail(exc)

    if output:
        click.echo(f"update.xml written to: {output}")
    else:
        click.echo(document.decode("utf-8"))


@main.command("inspect")
@click.option("--crx", "crx_path", required=True, metavar="PATH", help="CRX file.")
@click.option("--json-output", is_flag=True, help="Emit JSON.")
def inspect_command(crx_path: str, json_output: bool) -> None:
    """Display the header and segments of a CRX file."""
    try:
        package = PackageAssembler().parse(Path(crx_path).read_bytes())
    except (CrxError, OSError) as exc:
        click.echo(f"Error loading package: {exc}", err=True)
        sys.exit(1)

    info = {
        "version": CRX_VERSION,
        "app_id": derive_app_id(package.public_key),
        "public_key_bytes": len(package.public_key),
        "signature_bytes": len(package.signature),
        "contents_bytes": len(package.contents),
        "total_bytes": package.total_size,
    }
    if json_output:
        click.echo(json.dumps(info, indent=2))
        return

    click.echo(f"CRX Version  : {info['version']}")
    click.echo(f"App ID       : {info['app_id']}")
    click.echo(f"Header       : {CRX_HEADER_SIZE} bytes")
    click.echo(f"Public Key   : {info['public_key_bytes']:,} bytes")
    click.echo(f"Signature    : {info['signature_bytes']:,} bytes")
    click.echo(f"Contents     : {info['contents_bytes']:,} bytes")
    click.echo(f"Total        : {info['total_bytes']:,} bytes")


@main.command("verify")
@click.option("--crx", "crx_path", required=True, metavar="PATH", help="CRX file.")
def verify_command(crx_path: str) -> None:
    """Verify a CRX file's signature against its embedded public key."""
    try:
        data = Path(crx_path).read_bytes()
    except OSError as exc:
        _fail(exc)

    result = PackageVerifier().verify(data)
    if result.valid:
        click.echo("Signature: VALID")
        click.echo(f"  App ID : {result.app_id}")
    else:
        click.echo(f"Signature: INVALID — {result.error}")
        sys.exit(2)


if __name__ == "__main__":
    main()
