#!/usr/bin/env python3
"""Install-validation postback verifier.

Verifies the attribution signature on a postback against the authority's
P-256 public key, without trusting anything else in the record.

Verification steps:
  1. Decode the postback JSON object and validate field shapes
  2. Select the item layout for the declared version (2.1, 2.2 or 3.0)
  3. Render the items, omitting absent optional fields
  4. Join the items with U+2063 and SHA-256 the UTF-8 bytes
  5. base64-decode attribution-signature and ECDSA-verify the DER
     signature against the digest

Dependencies: cryptography (for ECDSA P-256)

Usage:
    python verify_postback.py <postback.json>
    python verify_postback.py --json [--pubkey <base64 SPKI>] [-v] <postback.json>
"""
from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from skad_canonical import join_items
from skad_crypto import verify_message
from skad_dispatch import canonical_postback, postback_public_key
from skad_errors import MissingRequiredFieldError, SkadNetworkError
from skad_keys import parse_public_key_b64
from skad_types import PostbackRecord

logger = logging.getLogger(__name__)


def verify_postback(
    record: PostbackRecord,
    public_key: Optional[ec.EllipticCurvePublicKey] = None,
) -> bool:
    """Verify a postback's attribution signature.

    Returns False for a signature that does not match. Raises
    UnsupportedVersionError, MissingRequiredFieldError or
    SignatureDecodeError when the record itself is unusable.
    """
    items = canonical_postback(record)
    if not record.attribution_signature:
        raise MissingRequiredFieldError("attribution-signature", record.version)
    ok = verify_message(
        postback_public_key(public_key),
        join_items(items),
        record.attribution_signature,
    )
    if not ok:
        logger.warning(
            "postback signature rejected: transaction-id=%s version=%s",
            record.transaction_id,
            record.version,
        )
    return ok


@dataclass
class PostbackResult:
    """Result of checking one postback mapping."""
    status: str  # "verified" | "rejected" | "invalid"
    errors: list[str] = field(default_factory=list)
    items: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "verified"


def check_postback(
    data: Mapping[str, Any],
    public_key: Optional[ec.EllipticCurvePublicKey] = None,
) -> PostbackResult:
    """Run every verification step on a decoded postback, collecting errors."""
    try:
        record = PostbackRecord.from_dict(data)
        items = canonical_postback(record)
        ok = verify_postback(record, public_key)
    except SkadNetworkError as e:
        return PostbackResult(status="invalid", errors=[f"{type(e).__name__}: {e}"])

    if not ok:
        return PostbackResult(
            status="rejected",
            errors=["ECDSA signature verification FAILED"],
            items=items,
        )
    return PostbackResult(status="verified", items=items)


def main() -> int:
    args = sys.argv[1:]
    output_json = "--json" in args
    verbose = "-v" in args
    args = [a for a in args if a not in ("--json", "-v")]

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)

    public_key = None
    if "--pubkey" in args:
        i = args.index("--pubkey")
        if i + 1 >= len(args):
            print("ERROR: --pubkey needs a value", file=sys.stderr)
            return 1
        try:
            public_key = parse_public_key_b64(args[i + 1])
        except SkadNetworkError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        del args[i:i + 2]

    if len(args) != 1:
        print("Usage: python verify_postback.py [--json] [-v] [--pubkey <base64>] <postback.json>",
              file=sys.stderr)
        return 1

    path = Path(args[0])
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: cannot read {path}: {e}", file=sys.stderr)
        return 1

    result = check_postback(data, public_key)

    if output_json:
        print(json.dumps({
            "status": result.status,
            "ok": result.ok,
            "errors": result.errors,
            "items": result.items,
        }, indent=2))
    else:
        status_icon = {
            "verified": "PASS",
            "rejected": "FAIL",
            "invalid": "ERROR",
        }.get(result.status, "UNKNOWN")
        print(f"Postback: {status_icon} ({result.status})")
        for e in result.errors:
            print(f"  ERROR: {e}")
        if isinstance(data, dict):
            print(f"  transaction-id: {data.get('transaction-id', '?')}")
            print(f"  version: {data.get('version', '?')}")

    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
