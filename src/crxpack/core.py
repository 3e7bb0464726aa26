"""Archiving, signing, identity and container layout for CRX packages."""

from __future__ import annotations

import asyncio
import hashlib
import io
import logging
import os
import string
import zipfile
from pathlib import Path
from typing import BinaryIO, Protocol

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from crxpack.errors import (
    ArchiveError,
    AssemblyPreconditionError,
    ContainerFormatError,
    KeyDerivationError,
    SigningError,
)
from crxpack.models import (
    CRX_HEADER,
    CRX_HEADER_SIZE,
    CRX_MAGIC,
    CRX_VERSION,
    CrxPackage,
    KeyPair,
    VerificationResult,
)

logger = logging.getLogger(__name__)

# Base-26 digits; hex values 0-f shifted by 10 land on "a"-"p".
_BASE26_DIGITS = string.digits + string.ascii_lowercase[:16]

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_rsa_private_key(
    private_key: bytes, password: bytes | None = None
) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(private_key, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"Could not load private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(
            f"Unsupported key type: {type(key).__name__}. "
            "CRX2 packages are signed with RSA keys only."
        )
    return key


def derive_app_id(public_key: bytes) -> str:
    """Return the 32-letter extension id for a DER-encoded public key.

    The first 32 hex digits of the key's SHA-256 digest are each shifted into
    the ``a``-``p`` range, giving the identifier the browser derives itself.
    """
    if not public_key:
        raise ValueError("public_key must be non-empty")
    digest = hashlib.sha256(public_key).hexdigest()[:32]
    return "".join(_BASE26_DIGITS[(int(ch, 16) + 10) % 26] for ch in digest)


# ---------------------------------------------------------------------------
# KeyManager
# ---------------------------------------------------------------------------


class KeyManager:
    """Generate, persist, and load RSA signing keys."""

    def generate_keypair(
        self,
        key_size: int = 2048,
        passphrase: bytes | None = None,
    ) -> KeyPair:
        """Generate a fresh RSA key pair.

        Returns:
            A :class:`KeyPair` holding the PKCS#8 PEM private key and the
            DER-encoded SubjectPublicKeyInfo public key.
        """
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(passphrase)
            if passphrase is not None
            else serialization.NoEncryption()
        )
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
        public_der = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return KeyPair(private_key=private_pem, public_key=public_der)

    def save_private_key(self, private_key: bytes, path: str) -> Path:
        """Write *private_key* to *path*, creating parent directories.

        The file is written with mode 0o600 on POSIX systems.
        """
        key_file = Path(path)
        key_file.parent.mkdir(parents=True, exist_ok=True)
        key_file.write_bytes(private_key)
        try:
            os.chmod(key_file, 0o600)
        except NotImplementedError:
            pass  # Windows
        return key_file

    def load_private_key(self, path: str, password: bytes | None = None) -> bytes:
        """Read PEM bytes from *path* and check they hold an RSA private key."""
        pem_bytes = Path(path).read_bytes()
        _load_rsa_private_key(pem_bytes, password=password)
        return pem_bytes


# ---------------------------------------------------------------------------
# ContentArchiver
# ---------------------------------------------------------------------------


class ContentArchiver:
    """Serialise a directory tree into zip bytes.

    Entries are written in sorted path order. The private key file at the
    root of the tree is never archived.
    """

    def __init__(self, key_file_name: str = "key.pem", compression_level: int = 6) -> None:
        self.key_file_name = key_file_name
        self.compression_level = compression_level

    def list_entries(self, root: Path) -> list[str]:
        """Relative POSIX paths of every file that :meth:`archive` includes."""
        try:
            candidates = sorted(root.rglob("*"))
            return [
                file_path.relative_to(root).as_posix()
                for file_path in candidates
                if file_path.is_file()
                and file_path.relative_to(root).as_posix() != self.key_file_name
            ]
        except OSError as exc:
            raise ArchiveError(f"Could not enumerate {root}: {exc}") from exc

    async def archive(self, root: Path) -> bytes:
        """Zip every included file under *root* and return the archive bytes."""
        entries = self.list_entries(root)
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for name in entries:
                    source = root / name
                    data = await asyncio.to_thread(source.read_bytes)
                    info = zipfile.ZipInfo.from_file(
                        source, arcname=name, strict_timestamps=False
                    )
                    info.compress_type = zipfile.ZIP_DEFLATED
                    archive.writestr(info, data, compresslevel=self.compression_level)
                    logger.debug("Archived %s (%d bytes)", name, len(data))
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveError(f"Could not archive {root}: {exc}") from exc
        contents = buffer.getvalue()
        logger.info("Archived %d files from %s (%d bytes)", len(entries), root, len(contents))
        return contents


# ---------------------------------------------------------------------------
# Public key derivation
# ---------------------------------------------------------------------------


class KeyDeriver(Protocol):
    """Anything that can turn a PEM private key into a DER public key."""

    async def derive_public_key(self, private_key: bytes) -> bytes: ...


class OpenSSLKeyDeriver:
    """Derive the public key with ``openssl rsa -pubout -outform DER``.

    The private key is written to the process's stdin and the DER public key
    is collected from its stdout. Failures are reported, never retried.
    """

    PASSWORD_ENV = "CRXPACK_KEY_PASSWORD"

    def __init__(self, binary: str = "openssl", password: bytes | None = None) -> None:
        self.binary = binary
        self.password = password

    async def derive_public_key(self, private_key: bytes) -> bytes:
        # Always give openssl a passphrase source so it never prompts on a tty.
        args = [
            self.binary, "rsa", "-pubout", "-outform", "DER",
            "-passin", f"env:{self.PASSWORD_ENV}",
        ]
        try:
            password = "" if self.password is None else self.password.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise KeyDerivationError(
                f"Key password must be valid UTF-8 for {self.binary}: {exc}"
            ) from exc
        env = {**os.environ, self.PASSWORD_ENV: password}
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
            stdout, stderr = await process.communicate(private_key)
        except OSError as exc:
            raise KeyDerivationError(f"Could not run {self.binary}: {exc}") from exc

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise KeyDerivationError(
                f"{self.binary} exited with status {process.returncode}: {message}"
            )
        if not stdout:
            raise KeyDerivationError(f"{self.binary} produced no public key")
        return stdout


class CryptographyKeyDeriver:
    """In-process key derivation using the ``cryptography`` package."""

    def __init__(self, password: bytes | None = None) -> None:
        self.password = password

    async def derive_public_key(self, private_key: bytes) -> bytes:
        try:
            key = _load_rsa_private_key(private_key, password=self.password)
        except SigningError as exc:
            raise KeyDerivationError(str(exc)) from exc
        return key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class Signer:
    """Sign package contents with RSA/SHA-1 and derive the matching public key."""

    def __init__(self, key_deriver: KeyDeriver | None = None) -> None:
        self.key_deriver: KeyDeriver = key_deriver or OpenSSLKeyDeriver()

    async def derive_public_key(self, private_key: bytes) -> bytes:
        public_key = await self.key_deriver.derive_public_key(private_key)
        logger.info("Derived public key (%d bytes)", len(public_key))
        return public_key

    def sign(
        self, contents: bytes, private_key: bytes, password: bytes | None = None
    ) -> bytes:
        """Return the PKCS#1 v1.5 SHA-1 signature of *contents*."""
        key = _load_rsa_private_key(private_key, password=password)
        signature = key.sign(contents, padding.PKCS1v15(), hashes.SHA1())
        logger.info("Signed %d bytes of contents", len(contents))
        return signature

    def verify(self, contents: bytes, signature: bytes, public_key: bytes) -> bool:
        """Check *signature* over *contents* against a DER public key."""
        try:
            key = serialization.load_der_public_key(public_key)
        except (ValueError, UnsupportedAlgorithm):
            return False
        if not isinstance(key, rsa.RSAPublicKey):
            return False
        try:
            key.verify(signature, contents, padding.PKCS1v15(), hashes.SHA1())
        except InvalidSignature:
            return False
        return True


# ---------------------------------------------------------------------------
# PackageAssembler
# ---------------------------------------------------------------------------


class PackageAssembler:
    """Lay out, write, and parse CRX2 containers."""

    def _package(self, public_key: bytes, signature: bytes, contents: bytes) -> CrxPackage:
        for field_name, segment in (
            ("public key", public_key),
            ("signature", signature),
            ("contents", contents),
        ):
            if not segment:
                raise AssemblyPreconditionError(f"Cannot assemble without {field_name}")
        return CrxPackage(public_key=public_key, signature=signature, contents=contents)

    def assemble(self, public_key: bytes, signature: bytes, contents: bytes) -> bytes:
        """Return ``header || public_key || signature || contents``."""
        package = self._package(public_key, signature, contents)
        crx = bytearray(package.total_size)
        CRX_HEADER.pack_into(crx, 0, CRX_MAGIC, CRX_VERSION, len(public_key), len(signature))
        offset = CRX_HEADER_SIZE
        for segment in (public_key, signature, contents):
            crx[offset : offset + len(segment)] = segment
            offset += len(segment)
        logger.info("Assembled CRX package (%d bytes)", len(crx))
        return bytes(crx)

    def write_to(
        self, stream: BinaryIO, public_key: bytes, signature: bytes, contents: bytes
    ) -> int:
        """Write the container to *stream* segment by segment; return its size."""
        package = self._package(public_key, signature, contents)
        stream.write(package.header())
        stream.write(public_key)
        stream.write(signature)
        stream.write(contents)
        return package.total_size

    def parse(self, data: bytes) -> CrxPackage:
        """Split a container back into its public key, signature and contents.

        Raises:
            ContainerFormatError: on bad magic, an unsupported version, or
                lengths that run past the end of *data*.
        """
        if len(data) < CRX_HEADER_SIZE:
            raise ContainerFormatError(
                f"Container is {len(data)} bytes; header alone needs {CRX_HEADER_SIZE}"
            )
        magic, version, key_length, sig_length = CRX_HEADER.unpack_from(data, 0)
        if magic != CRX_MAGIC:
            raise ContainerFormatError(f"Bad magic {magic!r}; expected {CRX_MAGIC!r}")
        if version != CRX_VERSION:
            raise ContainerFormatError(f"Unsupported CRX version {version}")

        key_end = CRX_HEADER_SIZE + key_length
        sig_end = key_end + sig_length
        if sig_end >= len(data) or key_length == 0 or sig_length == 0:
            raise ContainerFormatError(
                f"Header declares key={key_length} sig={sig_length} bytes but "
                f"container is only {len(data)} bytes"
            )
        view = memoryview(data)
        return CrxPackage(
            public_key=bytes(view[CRX_HEADER_SIZE:key_end]),
            signature=bytes(view[key_end:sig_end]),
            contents=bytes(view[sig_end:]),
        )


# ---------------------------------------------------------------------------
# PackageVerifier
# ---------------------------------------------------------------------------


class PackageVerifier:
    """Check that a container's signature matches its embedded public key."""

    def verify(self, data: bytes) -> VerificationResult:
        try:
            package = PackageAssembler().parse(data)
        except ContainerFormatError as exc:
            return VerificationResult(valid=False, error=str(exc))

        app_id = derive_app_id(package.public_key)
        if not Signer().verify(
            package.contents, package.signature, package.public_key
        ):
            return VerificationResult(
                valid=False, app_id=app_id, error="Signature verification failed"
            )
        return VerificationResult(valid=True, app_id=app_id)


__all__ = [
    "ContentArchiver",
    "CryptographyKeyDeriver",
    "KeyDeriver",
    "KeyManager",
    "OpenSSLKeyDeriver",
    "PackageAssembler",
    "PackageVerifier",
    "Signer",
    "derive_app_id",
]
