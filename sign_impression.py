#!/usr/bin/env python3
"""Sign ad impression parameters with an ad network key pair.

Usage:
    python sign_impression.py <keypair.pem> <params.json>
    python sign_impression.py --json ./keys/adnetwork.pem ./impression.json

The PEM file holds the private key block and its public key block. The
params file is a JSON object with the keys version, ad-network-id,
campaign-id, itunes-item-id, nonce, source-app-store-id, fidelity-type
and timestamp (RFC 3339). Prints the base64 signature; the signature is
verified with the same key pair before it is printed.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

from skad_dispatch import canonical_params
from skad_errors import SkadNetworkError
from skad_signer import Signer
from skad_types import SigningParameters


def load_params(path: Path) -> SigningParameters:
    """Read SigningParameters from a JSON file."""
    return SigningParameters.from_dict(json.loads(path.read_text()))


def main() -> int:
    output_json = "--json" in sys.argv
    args = [a for a in sys.argv[1:] if a != "--json"]

    if len(args) != 2:
        print("Usage: python sign_impression.py [--json] <keypair.pem> <params.json>", file=sys.stderr)
        return 1

    key_path, params_path = Path(args[0]), Path(args[1])

    try:
        signer = Signer.from_pem(key_path.read_text())
        params = load_params(params_path)
        signature = signer.sign(params)
        verified = signer.verify(params, signature)
    except (OSError, json.JSONDecodeError, SkadNetworkError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if not verified:
        print("ERROR: signature did not verify with the key pair's public key", file=sys.stderr)
        return 1

    if output_json:
        print(json.dumps({
            "signature": signature,
            "items": canonical_params(params),
        }, indent=2, ensure_ascii=False))
    else:
        print(signature)
    return 0


if __name__ == "__main__":
    sys.exit(main())
