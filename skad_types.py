"""Typed inputs for signing and verification.

SigningParameters describes one ad impression an ad network signs.
PostbackRecord is an install-validation postback received from the
authority. Both are immutable; optional fields are ``None`` when absent
and 0 is always a present value.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Mapping, Optional

from skad_canonical import SEPARATOR
from skad_errors import FormatError
from validate_postback import MAX_CONVERSION_VALUE, validate_postback

__all__ = ["FidelityType", "SigningParameters", "PostbackRecord"]


class FidelityType(IntEnum):
    # Custom ad presentation provided by the ad network (2.2 and later)
    VIEW_THROUGH = 0
    # App Store product page rendered by StoreKit
    STOREKIT_RENDERED = 1

    def __str__(self) -> str:
        return str(self.value)


def _check_identifier(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be str, got {type(value)!r}")
    if SEPARATOR in value:
        raise ValueError(f"{name} must not contain the message separator U+2063")


def _check_uint(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be int, got {type(value)!r}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def _check_fidelity(value: Any) -> Optional[FidelityType]:
    if value is None:
        return None
    # bool is an int subclass; True must not pass as STOREKIT_RENDERED
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"fidelity_type must be int, got {type(value)!r}")
    return FidelityType(value)


def _check_optional_bool(name: str, value: Any) -> None:
    if value is not None and not isinstance(value, bool):
        raise TypeError(f"{name} must be bool, got {type(value)!r}")


def _parse_timestamp(value: str) -> datetime:
    s = value
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    ts = datetime.fromisoformat(s)
    if ts.tzinfo is None:
        raise ValueError("timestamp has no UTC offset")
    return ts


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SigningParameters:
    """One impression to sign. Build a new instance, with a new nonce, per impression."""
    version: str
    ad_network_id: str
    campaign_id: int
    itunes_item_id: int
    nonce: uuid.UUID
    source_app_store_id: int
    timestamp: datetime
    fidelity_type: Optional[FidelityType] = None

    def __post_init__(self):
        _check_identifier("version", self.version)
        _check_identifier("ad_network_id", self.ad_network_id)
        _check_uint("campaign_id", self.campaign_id)
        _check_uint("itunes_item_id", self.itunes_item_id)
        _check_uint("source_app_store_id", self.source_app_store_id)
        if not isinstance(self.nonce, uuid.UUID):
            raise TypeError(f"nonce must be uuid.UUID, got {type(self.nonce)!r}")
        if not isinstance(self.timestamp, datetime):
            raise TypeError(f"timestamp must be datetime, got {type(self.timestamp)!r}")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        object.__setattr__(self, "fidelity_type", _check_fidelity(self.fidelity_type))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SigningParameters":
        """Build from the external mapping (hyphenated keys, RFC 3339 timestamp)."""
        try:
            return cls(
                version=data.get("version", ""),
                ad_network_id=data["ad-network-id"],
                campaign_id=data["campaign-id"],
                itunes_item_id=data["itunes-item-id"],
                nonce=uuid.UUID(data["nonce"]),
                source_app_store_id=data.get("source-app-store-id", 0),
                timestamp=_parse_timestamp(data["timestamp"]),
                fidelity_type=data.get("fidelity-type"),
            )
        except KeyError as e:
            raise FormatError(f"missing required field {e}") from e
        except (TypeError, ValueError, AttributeError) as e:
            raise FormatError(f"invalid signing parameters: {e}") from e

    def to_dict(self) -> dict:
        out: dict = {
            "version": self.version,
            "ad-network-id": self.ad_network_id,
            "campaign-id": self.campaign_id,
            "itunes-item-id": self.itunes_item_id,
            "nonce": str(self.nonce),
            "source-app-store-id": self.source_app_store_id,
            "timestamp": _format_timestamp(self.timestamp),
        }
        if self.fidelity_type is not None:
            out["fidelity-type"] = int(self.fidelity_type)
        return out


# external name -> attribute name
_POSTBACK_FIELDS = {
    "version": "version",
    "ad-network-id": "ad_network_id",
    "transaction-id": "transaction_id",
    "campaign-id": "campaign_id",
    "app-id": "app_id",
    "attribution-signature": "attribution_signature",
    "redownload": "redownload",
    "source-app-id": "source_app_id",
    "fidelity-type": "fidelity_type",
    "conversion-value": "conversion_value",
    "did-win": "did_win",
}


@dataclass(frozen=True)
class PostbackRecord:
    """An install-validation postback as received. Verification never mutates it."""
    version: str
    ad_network_id: str
    transaction_id: str
    campaign_id: int
    app_id: int
    attribution_signature: str
    redownload: Optional[bool] = None
    source_app_id: Optional[int] = None
    fidelity_type: Optional[FidelityType] = None
    conversion_value: Optional[int] = None
    did_win: Optional[bool] = None

    def __post_init__(self):
        for name in ("version", "ad_network_id", "transaction_id", "attribution_signature"):
            _check_identifier(name, getattr(self, name))
        _check_uint("campaign_id", self.campaign_id)
        _check_uint("app_id", self.app_id)
        if self.source_app_id is not None:
            _check_uint("source_app_id", self.source_app_id)
        _check_optional_bool("redownload", self.redownload)
        _check_optional_bool("did_win", self.did_win)
        object.__setattr__(self, "fidelity_type", _check_fidelity(self.fidelity_type))
        cv = self.conversion_value
        if cv is not None:
            _check_uint("conversion_value", cv)
            if cv > MAX_CONVERSION_VALUE:
                raise ValueError(f"conversion_value must be 0..{MAX_CONVERSION_VALUE}, got {cv}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PostbackRecord":
        """Build from the decoded JSON object. Unknown keys are ignored."""
        errors = validate_postback(data)
        if errors:
            raise FormatError("invalid postback: " + "; ".join(errors))
        kwargs = {
            attr: data[name]
            for name, attr in _POSTBACK_FIELDS.items()
            if data.get(name) is not None
        }
        kwargs.setdefault("version", "")
        kwargs.setdefault("attribution_signature", "")
        return cls(**kwargs)

    def to_dict(self) -> dict:
        out: dict = {}
        for name, attr in _POSTBACK_FIELDS.items():
            value = getattr(self, attr)
            if value is None or value == "":
                continue
            out[name] = int(value) if isinstance(value, FidelityType) else value
        return out
