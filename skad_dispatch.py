"""Version dispatch: which item layout and which key apply to a version tag.

A plain lookup keyed by the declared version string. Unknown tags raise
UnsupportedVersionError; there is no fallback to a neighbouring version.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from skad_canonical import (
    params_items_legacy,
    params_items_with_fidelity,
    postback_items_v2_1,
    postback_items_v2_2,
    postback_items_v3_0,
)
from skad_errors import UnsupportedVersionError
from skad_keys import AUTHORITY_PUBLIC_KEY

__all__ = [
    "PARAMS_RULES",
    "POSTBACK_RULES",
    "params_rule",
    "postback_rule",
    "canonical_params",
    "canonical_postback",
    "postback_public_key",
]

logger = logging.getLogger(__name__)

Rule = Callable[[Any], list]

# The bare tag is the unversioned form from before fidelity reporting.
PARAMS_RULES: dict[str, Rule] = {
    "": params_items_legacy,
    "2.1": params_items_legacy,
    "2.2": params_items_with_fidelity,
    "3.0": params_items_with_fidelity,
}

POSTBACK_RULES: dict[str, Rule] = {
    "2.1": postback_items_v2_1,
    "2.2": postback_items_v2_2,
    "3.0": postback_items_v3_0,
}


def params_rule(version: str) -> Rule:
    try:
        return PARAMS_RULES[version]
    except (KeyError, TypeError):
        raise UnsupportedVersionError(version) from None


def postback_rule(version: str) -> Rule:
    try:
        return POSTBACK_RULES[version]
    except (KeyError, TypeError):
        raise UnsupportedVersionError(version) from None


def canonical_params(params: Any) -> list[str]:
    items = params_rule(params.version)(params)
    logger.debug("params items for version %r: %r", params.version, items)
    return items


def canonical_postback(record: Any) -> list[str]:
    items = postback_rule(record.version)(record)
    logger.debug("postback items for version %r: %r", record.version, items)
    return items


def postback_public_key(
    public_key: Optional[ec.EllipticCurvePublicKey] = None,
) -> ec.EllipticCurvePublicKey:
    """The key postbacks verify against; the authority key unless overridden."""
    return AUTHORITY_PUBLIC_KEY if public_key is None else public_key
