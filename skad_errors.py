"""Error taxonomy for postback signing and verification.

A wrong signature is not an error: verification reports it as ``False``.
Everything here signals malformed input or a failed signing primitive.
"""
from __future__ import annotations

__all__ = [
    "SkadNetworkError",
    "FormatError",
    "SignatureDecodeError",
    "UnsupportedVersionError",
    "MissingRequiredFieldError",
    "SigningError",
]


class SkadNetworkError(Exception):
    """Base class for every error raised by this project."""


class FormatError(SkadNetworkError, ValueError):
    """Malformed key blocks or a malformed postback mapping."""


class SignatureDecodeError(FormatError):
    """The signature is not valid standard base64."""


class UnsupportedVersionError(SkadNetworkError, ValueError):
    def __init__(self, version: str):
        self.version = version
        super().__init__(f"unsupported version: {version!r}")


class MissingRequiredFieldError(SkadNetworkError, ValueError):
    def __init__(self, field: str, version: str):
        self.field = field
        self.version = version
        super().__init__(f"field '{field}' is required for version {version!r}")


class SigningError(SkadNetworkError):
    """The underlying ECDSA signing primitive failed."""
