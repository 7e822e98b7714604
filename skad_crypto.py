"""Digest and signature engine.

One fixed configuration, nothing is negotiable:
  1. UTF-8 encode the canonical message
  2. SHA-256 digest
  3. ECDSA over NIST P-256 on the digest, fresh random k per signature
  4. ASN.1 DER signature, transported as standard padded base64

Verification is deterministic. A structurally broken DER blob or a
signature made by another key is reported as False; only text that is
not base64 at all raises (SignatureDecodeError).
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re

from cryptography.exceptions import InternalError, InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, utils

from skad_errors import SignatureDecodeError, SigningError

__all__ = ["digest", "sign_message", "decode_signature", "verify_message"]

logger = logging.getLogger(__name__)

# The digest is computed here, so the signer must not hash it again.
_ALGORITHM = ec.ECDSA(utils.Prehashed(hashes.SHA256()))

_LINE_BREAKS_RE = re.compile(r"[\r\n]")


def digest(message: str) -> bytes:
    """SHA-256 of the UTF-8 message, 32 bytes."""
    return hashlib.sha256(message.encode("utf-8")).digest()


def sign_message(private_key: ec.EllipticCurvePrivateKey, message: str) -> str:
    """Sign *message* and return base64(DER(signature))."""
    try:
        der = private_key.sign(digest(message), _ALGORITHM)
    except (ValueError, InternalError) as e:
        raise SigningError(f"sign message error: {e}") from e
    return base64.b64encode(der).decode("ascii")


def decode_signature(signature_b64: str) -> bytes:
    if not isinstance(signature_b64, str):
        raise SignatureDecodeError(f"signature must be a string, got {type(signature_b64).__name__}")
    try:
        # line breaks are dropped, as standard base64 decoders do
        return base64.b64decode(_LINE_BREAKS_RE.sub("", signature_b64), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureDecodeError(f"signature decode error: {signature_b64!r}") from e


def verify_message(
    public_key: ec.EllipticCurvePublicKey,
    message: str,
    signature_b64: str,
) -> bool:
    """True only for a valid signature over *message* by *public_key*."""
    der = decode_signature(signature_b64)
    try:
        public_key.verify(der, digest(message), _ALGORITHM)
    except InvalidSignature:
        logger.debug("signature did not verify")
        return False
    return True
