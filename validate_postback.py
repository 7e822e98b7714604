"""Validate a postback mapping before it becomes a PostbackRecord.

The mapping is what the JSON layer hands over: hyphenated keys, optional
fields absent when the platform did not send them. Only shape is checked
here. Which fields a given version requires is decided when the record is
canonicalized, so a missing ``redownload`` is not reported by this module.
"""
from __future__ import annotations

import re
from typing import Any, Mapping

from skad_canonical import SEPARATOR

CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

MAX_CONVERSION_VALUE = 63  # unsigned 6-bit
VALID_FIDELITY = {0, 1}

STRING_FIELDS = {
    "version",
    "ad-network-id",
    "transaction-id",
    "attribution-signature",
}

INT_FIELDS = {
    "campaign-id",
    "app-id",
    "source-app-id",
    "fidelity-type",
    "conversion-value",
}

BOOL_FIELDS = {
    "redownload",
    "did-win",
}

REQUIRED_FIELDS = {
    "ad-network-id",
    "transaction-id",
    "campaign-id",
    "app-id",
}

ALL_FIELDS = STRING_FIELDS | INT_FIELDS | BOOL_FIELDS


def validate_postback(data: Mapping[str, Any]) -> list[str]:
    """Validate a single postback mapping. Returns list of error strings."""
    if not isinstance(data, Mapping):
        return ["postback is not a JSON object"]

    errors: list[str] = []

    for field in sorted(REQUIRED_FIELDS):
        if data.get(field) is None:
            errors.append(f"missing required field '{field}'")

    for field in sorted(STRING_FIELDS):
        val = data.get(field)
        if val is None:
            continue
        if not isinstance(val, str):
            errors.append(f"field '{field}' must be a string, got {type(val).__name__}")
            continue
        if CONTROL_CHAR_RE.search(val):
            errors.append(f"field '{field}' contains control characters")
        if SEPARATOR in val:
            errors.append(f"field '{field}' contains the message separator U+2063")

    for field in sorted(INT_FIELDS):
        val = data.get(field)
        if val is None:
            continue
        # bool is an int subclass; JSON true must not pass as 1
        if not isinstance(val, int) or isinstance(val, bool):
            errors.append(f"field '{field}' must be an integer, got {type(val).__name__}")
        elif val < 0:
            errors.append(f"field '{field}' must be non-negative, got {val}")

    for field in sorted(BOOL_FIELDS):
        val = data.get(field)
        if val is not None and not isinstance(val, bool):
            errors.append(f"field '{field}' must be a boolean, got {type(val).__name__}")

    cv = data.get("conversion-value")
    if isinstance(cv, int) and not isinstance(cv, bool) and cv > MAX_CONVERSION_VALUE:
        errors.append(
            f"conversion-value must fit in 6 bits (0..{MAX_CONVERSION_VALUE}), got {cv}"
        )

    fidelity = data.get("fidelity-type")
    if isinstance(fidelity, int) and not isinstance(fidelity, bool) and fidelity not in VALID_FIDELITY:
        errors.append(f"fidelity-type must be 0 or 1, got {fidelity}")

    return errors
