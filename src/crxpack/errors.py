"""Exception hierarchy for crxpack."""

from __future__ import annotations


class CrxError(Exception):
    """Base class for every error raised by crxpack."""


class TreeLoadError(CrxError):
    """Source directory missing/unreadable, or manifest absent/malformed."""


class ArchiveError(CrxError):
    """A file could not be read, or the zip writer failed."""


class KeyDerivationError(CrxError):
    """The public key could not be derived from the private key."""


class SigningError(CrxError):
    """The contents could not be signed with the supplied private key."""


class AssemblyPreconditionError(CrxError):
    """Assembly attempted without a public key, signature, or contents."""


class ContainerFormatError(CrxError):
    """Bytes handed to the parser are not a well-formed CRX2 container."""


class ConfigurationError(CrxError):
    """A required setting (such as the update codebase URL) is missing."""


__all__ = [
    "ArchiveError",
    "AssemblyPreconditionError",
    "ConfigurationError",
    "ContainerFormatError",
    "CrxError",
    "KeyDerivationError",
    "SigningError",
    "TreeLoadError",
]
