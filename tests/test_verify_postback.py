"""Tests for verify_postback.py against real authority-signed postbacks."""
from __future__ import annotations

import base64
import json
import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

sys.path.insert(0, str(Path(__file__).parent.parent))
import verify_postback as vp
from skad_fixtures import POSTBACK_V2_2, POSTBACK_V3_0_LOSE, POSTBACK_V3_0_WIN, postback
from skad_canonical import join_items
from skad_crypto import sign_message
from skad_dispatch import canonical_postback
from skad_errors import MissingRequiredFieldError, SignatureDecodeError, UnsupportedVersionError
from skad_types import FidelityType, PostbackRecord
from verify_postback import check_postback, verify_postback


def record(base: dict, **overrides) -> PostbackRecord:
    return PostbackRecord.from_dict(postback(base, **overrides))


def self_signed(base: dict, key: ec.EllipticCurvePrivateKey, **overrides) -> PostbackRecord:
    """A postback signed by a test authority key instead of the real one."""
    r = record(base, **overrides)
    sig = sign_message(key, join_items(canonical_postback(r)))
    return record(base, attribution_signature=sig, **overrides)


class TestAuthoritySignedPostbacks:
    @pytest.mark.parametrize("data", [POSTBACK_V2_2, POSTBACK_V3_0_WIN, POSTBACK_V3_0_LOSE])
    def test_shipped_signature_verifies(self, data):
        assert verify_postback(PostbackRecord.from_dict(data)) is True

    def test_verification_does_not_mutate(self):
        r = record(POSTBACK_V3_0_LOSE)
        before = r.to_dict()
        verify_postback(r)
        assert r.to_dict() == before

    def test_flipped_did_win_fails(self):
        assert verify_postback(record(POSTBACK_V3_0_LOSE, did_win=True)) is False

    def test_flipped_redownload_fails(self):
        assert verify_postback(record(POSTBACK_V3_0_WIN, redownload=False)) is False

    def test_dropped_source_app_fails(self):
        assert verify_postback(record(POSTBACK_V3_0_WIN, source_app_id=None)) is False

    def test_changed_conversion_value_still_verifies(self):
        # conversion-value is not covered by the signature
        assert verify_postback(record(POSTBACK_V2_2, conversion_value=63)) is True

    def test_changed_transaction_id_fails(self):
        r = record(POSTBACK_V3_0_LOSE, transaction_id="6aafb7a5-0170-41b5-bbe4-fe71dedf1e28")
        assert verify_postback(r) is False

    def test_line_wrapped_signature_verifies(self):
        sig = POSTBACK_V3_0_WIN["attribution-signature"]
        wrapped = sig[:32] + "\n" + sig[32:]
        assert verify_postback(record(POSTBACK_V3_0_WIN, attribution_signature=wrapped)) is True

    def test_version_downgrade_fails(self):
        assert verify_postback(record(POSTBACK_V2_2, version="2.1")) is False

    def test_flipped_signature_byte_fails(self):
        der = bytearray(base64.b64decode(POSTBACK_V3_0_WIN["attribution-signature"]))
        der[-1] ^= 0x01
        sig = base64.b64encode(bytes(der)).decode()
        assert verify_postback(record(POSTBACK_V3_0_WIN, attribution_signature=sig)) is False

    def test_other_key_fails(self):
        other = ec.generate_private_key(ec.SECP256R1()).public_key()
        assert verify_postback(record(POSTBACK_V3_0_WIN), public_key=other) is False


class TestSubstitutedKey:
    def test_test_authority_key(self):
        key = ec.generate_private_key(ec.SECP256R1())
        r = self_signed(POSTBACK_V3_0_LOSE, key)
        assert verify_postback(r, public_key=key.public_key()) is True
        # not signed by the real authority
        assert verify_postback(r) is False

    def test_2_1_without_fidelity(self):
        key = ec.generate_private_key(ec.SECP256R1())
        r = self_signed(POSTBACK_V2_2, key, version="2.1", fidelity_type=None)
        assert verify_postback(r, public_key=key.public_key()) is True

    def test_view_through_fidelity(self):
        key = ec.generate_private_key(ec.SECP256R1())
        r = self_signed(POSTBACK_V3_0_WIN, key, fidelity_type=0)
        assert r.fidelity_type is FidelityType.VIEW_THROUGH
        assert verify_postback(r, public_key=key.public_key()) is True


class TestPostbackErrors:
    @pytest.mark.parametrize("version", ["", "1.0", "2.0", "4.0"])
    def test_unsupported_version(self, version):
        with pytest.raises(UnsupportedVersionError):
            verify_postback(record(POSTBACK_V3_0_WIN, version=version))

    @pytest.mark.parametrize("version", ["3", "v3.0", "3.0 ", "three"])
    def test_malformed_version_is_unsupported(self, version):
        with pytest.raises(UnsupportedVersionError) as exc:
            verify_postback(record(POSTBACK_V3_0_LOSE, version=version))
        assert exc.value.version == version

    def test_missing_version(self):
        with pytest.raises(UnsupportedVersionError):
            verify_postback(record(POSTBACK_V3_0_WIN, version=None))

    def test_missing_redownload(self):
        with pytest.raises(MissingRequiredFieldError):
            verify_postback(record(POSTBACK_V2_2, redownload=None))

    def test_missing_did_win(self):
        with pytest.raises(MissingRequiredFieldError):
            verify_postback(record(POSTBACK_V3_0_LOSE, did_win=None))

    def test_missing_signature(self):
        with pytest.raises(MissingRequiredFieldError) as exc:
            verify_postback(record(POSTBACK_V3_0_LOSE, attribution_signature=None))
        assert exc.value.field == "attribution-signature"

    def test_undecodable_signature(self):
        with pytest.raises(SignatureDecodeError):
            verify_postback(record(POSTBACK_V3_0_LOSE, attribution_signature="%%%"))


class TestCheckPostback:
    def test_verified(self):
        result = check_postback(POSTBACK_V3_0_LOSE)
        assert result.ok
        assert result.status == "verified"
        assert len(result.items) == 8
        assert result.items[-2:] == ["1", "false"]

    def test_rejected(self):
        result = check_postback(postback(POSTBACK_V3_0_LOSE, did_win=True))
        assert not result.ok
        assert result.status == "rejected"
        assert any("FAILED" in e for e in result.errors)

    def test_invalid_version(self):
        result = check_postback(postback(POSTBACK_V3_0_LOSE, version="4.0"))
        assert result.status == "invalid"
        assert any("UnsupportedVersionError" in e for e in result.errors)

    def test_invalid_shape(self):
        result = check_postback(postback(POSTBACK_V3_0_LOSE, campaign_id="42"))
        assert result.status == "invalid"
        assert any("campaign-id" in e for e in result.errors)

    def test_not_an_object(self):
        result = check_postback([1, 2, 3])
        assert result.status == "invalid"
        assert any("not a JSON object" in e for e in result.errors)


class TestMain:
    def run(self, monkeypatch, *args):
        monkeypatch.setattr(sys, "argv", ["verify_postback.py", *args])
        return vp.main()

    def test_pass(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "postback.json"
        path.write_text(json.dumps(POSTBACK_V3_0_WIN))
        assert self.run(monkeypatch, str(path)) == 0
        assert "Postback: PASS" in capsys.readouterr().out

    def test_fail_json(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "postback.json"
        path.write_text(json.dumps(postback(POSTBACK_V3_0_WIN, did_win=False)))
        assert self.run(monkeypatch, "--json", str(path)) == 1
        out = json.loads(capsys.readouterr().out)
        assert out["status"] == "rejected"
        assert out["ok"] is False

    def test_pubkey_override(self, tmp_path, monkeypatch, capsys):
        key = ec.generate_private_key(ec.SECP256R1())
        r = self_signed(POSTBACK_V3_0_LOSE, key)
        path = tmp_path / "postback.json"
        path.write_text(json.dumps(r.to_dict()))
        spki = key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        pubkey = base64.b64encode(spki).decode()
        assert self.run(monkeypatch, "--pubkey", pubkey, str(path)) == 0

    def test_missing_file(self, tmp_path, monkeypatch, capsys):
        assert self.run(monkeypatch, str(tmp_path / "nope.json")) == 1
        assert "ERROR" in capsys.readouterr().err

    def test_usage(self, monkeypatch, capsys):
        assert self.run(monkeypatch) == 1
        assert "Usage" in capsys.readouterr().err
