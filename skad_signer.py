"""Sign and verify ad impression parameters with an ad network key pair.

A Signer holds its KeyPair read-only, so one instance can be shared
between threads. Each ``sign`` call draws fresh randomness; two
signatures over the same parameters differ but both verify.
"""
from __future__ import annotations

import logging

from skad_canonical import join_items
from skad_crypto import sign_message, verify_message
from skad_dispatch import canonical_params
from skad_keys import KeyPair, load_key_pair
from skad_types import SigningParameters

__all__ = ["Signer", "sign", "verify"]

logger = logging.getLogger(__name__)


class Signer:
    def __init__(self, key_pair: KeyPair):
        self._key_pair = key_pair

    @classmethod
    def from_pem(cls, text: str | bytes) -> "Signer":
        return cls(load_key_pair(text))

    @property
    def key_pair(self) -> KeyPair:
        return self._key_pair

    def message(self, params: SigningParameters) -> str:
        """The canonical message for *params*."""
        return join_items(canonical_params(params))

    def sign(self, params: SigningParameters) -> str:
        """Return the base64 DER signature for *params*."""
        signature = sign_message(self._key_pair.private_key, self.message(params))
        logger.debug("signed impression nonce=%s version=%r", params.nonce, params.version)
        return signature

    def verify(self, params: SigningParameters, signature: str) -> bool:
        """Check *signature* against this signer's own public key."""
        return verify_message(self._key_pair.public_key, self.message(params), signature)


def sign(signer: Signer, params: SigningParameters) -> str:
    return signer.sign(params)


def verify(signer: Signer, params: SigningParameters, signature: str) -> bool:
    return signer.verify(params, signature)
