"""Canonical item rendering and message joining for SKAdNetwork signatures.

Every value that takes part in a signature is rendered to a string item,
the items are put in the order their protocol version defines, and the
items are joined with U+2063 (INVISIBLE SEPARATOR). The joined string,
UTF-8 encoded, is exactly what gets hashed. A verifier has to rebuild it
byte for byte, so nothing here normalizes case or whitespace.

Optional fields that are absent are left out of the item list entirely.
Fields a version requires raise MissingRequiredFieldError when absent;
a default is never substituted.

This file has zero external dependencies.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from skad_errors import MissingRequiredFieldError

__all__ = [
    "SEPARATOR",
    "render_int",
    "render_bool",
    "render_nonce",
    "render_fidelity",
    "render_timestamp",
    "join_items",
    "message_bytes",
    "params_items_legacy",
    "params_items_with_fidelity",
    "postback_items_v2_1",
    "postback_items_v2_2",
    "postback_items_v3_0",
]

SEPARATOR = "\u2063"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def render_int(value: int) -> str:
    """Base-10 ASCII, no grouping, no leading zeros."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {type(value)!r}")
    return str(value)


def render_bool(value: bool) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    raise TypeError(f"expected bool, got {type(value)!r}")


def render_nonce(value: uuid.UUID) -> str:
    # str(UUID) is already the lowercase hyphenated form
    if not isinstance(value, uuid.UUID):
        raise TypeError(f"expected uuid.UUID, got {type(value)!r}")
    return str(value)


def render_fidelity(value: int) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected fidelity type, got {type(value)!r}")
    return str(int(value))


def render_timestamp(value: datetime) -> str:
    """Milliseconds since the Unix epoch as a decimal integer."""
    if not isinstance(value, datetime):
        raise TypeError(f"expected datetime, got {type(value)!r}")
    if value.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    # integer arithmetic on timedelta; float timestamps lose milliseconds
    return str((value - _EPOCH) // _MILLISECOND)


def join_items(items: Sequence[str]) -> str:
    """Join canonical items into the message string."""
    if not items:
        raise ValueError("cannot build a message from zero items")
    for item in items:
        if not isinstance(item, str):
            raise TypeError(f"canonical items must be str, got {type(item)!r}")
    return SEPARATOR.join(items)


def message_bytes(items: Sequence[str]) -> bytes:
    """The exact bytes that are hashed and signed."""
    return join_items(items).encode("utf-8")


def _require(obj: Any, attr: str, field: str) -> Any:
    value = getattr(obj, attr)
    if value is None:
        raise MissingRequiredFieldError(field, obj.version)
    return value


# --- Impression parameters (ad network signs, StoreKit verifies) ---

def _params_head(p: Any) -> list[str]:
    return [
        p.version,
        p.ad_network_id,
        render_int(p.campaign_id),
        render_int(p.itunes_item_id),
        render_nonce(p.nonce),
        render_int(p.source_app_store_id),
    ]


def params_items_legacy(p: Any) -> list[str]:
    """Layout without a fidelity item: the bare tag and 2.1."""
    items = _params_head(p)
    items.append(render_timestamp(p.timestamp))
    return items


def params_items_with_fidelity(p: Any) -> list[str]:
    """Layout for 2.2 and 3.0: fidelity sits between source app and timestamp."""
    items = _params_head(p)
    items.append(render_fidelity(_require(p, "fidelity_type", "fidelity-type")))
    items.append(render_timestamp(p.timestamp))
    return items


# --- Install-validation postbacks (authority signs, ad network verifies) ---

def postback_items_v2_1(r: Any) -> list[str]:
    items = [
        r.version,
        r.ad_network_id,
        render_int(r.campaign_id),
        render_int(r.app_id),
        r.transaction_id,
        render_bool(_require(r, "redownload", "redownload")),
    ]
    # only sent when the privacy threshold is met; 0 is a real value
    if r.source_app_id is not None:
        items.append(render_int(r.source_app_id))
    return items


def postback_items_v2_2(r: Any) -> list[str]:
    items = postback_items_v2_1(r)
    items.append(render_fidelity(_require(r, "fidelity_type", "fidelity-type")))
    return items


def postback_items_v3_0(r: Any) -> list[str]:
    items = postback_items_v2_2(r)
    items.append(render_bool(_require(r, "did_win", "did-win")))
    return items
