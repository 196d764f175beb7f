"""
Tests for call_ingest/services/signature.py - timestamped HMAC-SHA256 verification.
"""
import hashlib
import hmac

import pytest

from call_ingest.errors import AuthenticationError
from call_ingest.services.signature import sign, verify_signature

SECRET = "whsec_test_secret"
BODY = b'{"type":"post_call_transcription","data":{"conversation_id":"conv_001"}}'
TS = 1_800_000_000


def _header(body=BODY, secret=SECRET, ts=TS):
    return sign(body, secret, ts)


class TestValidSignatures:
    def test_fresh_signature_passes(self):
        assert verify_signature(BODY, _header(), SECRET, now=TS + 5) == TS

    def test_just_inside_window_passes(self):
        assert verify_signature(BODY, _header(), SECRET, now=TS + 1799) == TS

    def test_digest_is_hmac_of_timestamp_dot_body(self):
        expected = hmac.new(SECRET.encode(), f"{TS}.".encode() + BODY, hashlib.sha256).hexdigest()
        assert _header() == f"t={TS},v0={expected}"

    def test_uppercase_hex_and_space_after_comma(self):
        digest = _header().split("v0=")[1].upper()
        assert verify_signature(BODY, f"t={TS}, v0={digest}", SECRET, now=TS) == TS


class TestRejectedSignatures:
    def test_exactly_thirty_minutes_old_fails(self):
        with pytest.raises(AuthenticationError, match="stale"):
            verify_signature(BODY, _header(), SECRET, now=TS + 1800)

    def test_hours_old_fails(self):
        with pytest.raises(AuthenticationError, match="stale"):
            verify_signature(BODY, _header(), SECRET, now=TS + 7200)

    def test_far_future_timestamp_fails(self):
        with pytest.raises(AuthenticationError, match="future"):
            verify_signature(BODY, _header(), SECRET, now=TS - 1801)

    def test_small_clock_skew_ahead_passes(self):
        assert verify_signature(BODY, _header(), SECRET, now=TS - 60) == TS

    def test_wrong_secret_fails(self):
        with pytest.raises(AuthenticationError, match="mismatch"):
            verify_signature(BODY, _header(secret="other"), SECRET, now=TS)

    def test_tampered_body_fails(self):
        with pytest.raises(AuthenticationError, match="mismatch"):
            verify_signature(BODY + b" ", _header(), SECRET, now=TS)

    def test_timestamp_swapped_after_signing_fails(self):
        digest = _header().split("v0=")[1]
        with pytest.raises(AuthenticationError, match="mismatch"):
            verify_signature(BODY, f"t={TS + 10},v0={digest}", SECRET, now=TS + 10)

    @pytest.mark.parametrize("header", [None, "", "v0=abc", "t=notanumber,v0=abc", "sha256=deadbeef"])
    def test_missing_or_malformed_header_fails(self, header):
        with pytest.raises(AuthenticationError):
            verify_signature(BODY, header, SECRET, now=TS)

    def test_unconfigured_secret_rejects_everything(self):
        with pytest.raises(AuthenticationError, match="not configured"):
            verify_signature(BODY, _header(secret=""), "", now=TS)
