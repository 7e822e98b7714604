"""Key material for SKAdNetwork signing and postback verification.

A signing key is supplied as PEM text holding exactly two blocks: one
private key ("EC PRIVATE KEY" or PKCS#8 "PRIVATE KEY") and its public key
("PUBLIC KEY", SubjectPublicKeyInfo), in either order. Both must be
NIST P-256. The public key used for verification is the parsed block,
checked against the private key but never substituted by it.

The authority key for postbacks 2.1 and later is published as bare base64
SubjectPublicKeyInfo and parsed once at import.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from skad_errors import FormatError

__all__ = [
    "AUTHORITY_PUBLIC_KEY_B64",
    "AUTHORITY_PUBLIC_KEY",
    "KeyPair",
    "PemBlock",
    "split_pem_blocks",
    "load_key_pair",
    "parse_public_key_b64",
]

logger = logging.getLogger(__name__)

PEM_BLOCK_RE = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n"
    r"(?P<body>.*?)"
    r"-----END (?P=label)-----",
    re.DOTALL,
)

PRIVATE_KEY_LABELS = {"EC PRIVATE KEY", "PRIVATE KEY"}
PUBLIC_KEY_LABEL = "PUBLIC KEY"

# NIST P-256 key for postback versions 2.1 or later.
AUTHORITY_PUBLIC_KEY_B64 = (
    "MFkwEwYHKoZIzj0CAQYIKoZIzj0DAQcDQgAEWdp8GPcGqmhgzEFj9Z2nSpQVddayaPe4"
    "FMzqM9wib1+aHaaIzoHoLN9zW4K8y4SPykE3YVK3sVqW6Af0lfx3gg=="
)


@dataclass(frozen=True)
class PemBlock:
    label: str
    der: bytes


@dataclass(frozen=True)
class KeyPair:
    """A P-256 private key bound to the public key it was shipped with."""
    private_key: ec.EllipticCurvePrivateKey
    public_key: ec.EllipticCurvePublicKey

    def to_pem(self) -> str:
        """Serialize back to the two-block text ``load_key_pair`` accepts."""
        private_pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return (private_pem + public_pem).decode("ascii")


def _b64decode(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"{what} base64 decode failed: {e}") from e


def split_pem_blocks(text: str) -> list[PemBlock]:
    """Split PEM text into blocks. Only whitespace may surround them."""
    blocks: list[PemBlock] = []
    pos = 0
    for m in PEM_BLOCK_RE.finditer(text):
        if text[pos:m.start()].strip():
            raise FormatError("unexpected data outside PEM blocks")
        body = "".join(m.group("body").split())
        blocks.append(PemBlock(m.group("label"), _b64decode(body, f"'{m.group('label')}' block")))
        pos = m.end()
    if text[pos:].strip():
        if blocks:
            raise FormatError("trailing data after PEM blocks")
        raise FormatError("no PEM block found")
    return blocks


def _require_p256(key, what: str) -> None:
    if not isinstance(key.curve, ec.SECP256R1):
        raise FormatError(f"{what} must be on curve P-256, got {key.curve.name}")


def _parse_private_key(block: PemBlock) -> ec.EllipticCurvePrivateKey:
    try:
        key = serialization.load_der_private_key(block.der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise FormatError(f"'{block.label}' block parse error: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise FormatError(f"'{block.label}' block is not an elliptic-curve key")
    _require_p256(key, "private key")
    return key


def _parse_public_der(der: bytes, what: str) -> ec.EllipticCurvePublicKey:
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise FormatError(f"{what} parse error: {e}") from e
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise FormatError(f"{what} is not an elliptic-curve key")
    _require_p256(key, what)
    return key


def load_key_pair(text: str | bytes) -> KeyPair:
    """Parse a private/public key pair from two PEM blocks.

    Raises FormatError when the block count is not exactly two, when data
    trails the blocks, on an unknown block label, when either key fails to
    parse, or when the public key does not belong to the private key.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("ascii")
        except UnicodeDecodeError as e:
            raise FormatError(f"PEM data is not ASCII: {e}") from e

    blocks = split_pem_blocks(text)
    if len(blocks) != 2:
        raise FormatError(f"exactly 2 PEM blocks are required, found {len(blocks)}")

    private_key = None
    public_key = None
    for block in blocks:
        if block.label in PRIVATE_KEY_LABELS:
            if private_key is not None:
                raise FormatError("more than one private key block")
            private_key = _parse_private_key(block)
        elif block.label == PUBLIC_KEY_LABEL:
            if public_key is not None:
                raise FormatError("more than one public key block")
            public_key = _parse_public_der(block.der, f"'{block.label}' block")
        else:
            raise FormatError(f"unexpected block type detected: {block.label}")

    if private_key is None or public_key is None:
        raise FormatError("one private key block and one public key block are required")

    if private_key.public_key().public_numbers() != public_key.public_numbers():
        raise FormatError("public key block does not match the private key")

    logger.debug("loaded P-256 key pair")
    return KeyPair(private_key=private_key, public_key=public_key)


def parse_public_key_b64(text: str) -> ec.EllipticCurvePublicKey:
    """Parse a bare base64 DER SubjectPublicKeyInfo P-256 key."""
    der = _b64decode(text.strip(), "public key")
    return _parse_public_der(der, "public key")


AUTHORITY_PUBLIC_KEY = parse_public_key_b64(AUTHORITY_PUBLIC_KEY_B64)
