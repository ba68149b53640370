"""Tests for webhook signature verification (HMAC-SHA256 over the raw body)."""

import hashlib
import hmac
import json

import pytest

from waingest.whatsapp.signature import (
    SignatureVerificationError,
    compute_signature,
    verify_signature,
)

SECRET = "app-secret-123"
BODY = json.dumps({"object": "whatsapp_business_account", "entry": []}).encode()


def _expected(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestComputeSignature:
    def test_matches_hmac_sha256_hex(self):
        assert compute_signature(BODY, SECRET) == _expected(BODY, SECRET)

    def test_depends_on_exact_bytes(self):
        reserialized = json.dumps(json.loads(BODY), separators=(",", ":")).encode()
        assert reserialized != BODY
        assert compute_signature(reserialized, SECRET) != compute_signature(BODY, SECRET)


class TestVerifySignature:
    def test_valid_signature_passes(self):
        verify_signature(BODY, _expected(BODY, SECRET), SECRET)

    def test_missing_header_rejected(self):
        with pytest.raises(SignatureVerificationError, match="missing"):
            verify_signature(BODY, None, SECRET)

    def test_empty_header_rejected(self):
        with pytest.raises(SignatureVerificationError):
            verify_signature(BODY, "", SECRET)

    def test_wrong_prefix_rejected(self):
        digest = _expected(BODY, SECRET).split("=", 1)[1]
        with pytest.raises(SignatureVerificationError, match="format"):
            verify_signature(BODY, f"sha1={digest}", SECRET)

    def test_wrong_secret_rejected(self):
        with pytest.raises(SignatureVerificationError, match="mismatch"):
            verify_signature(BODY, _expected(BODY, "other-secret"), SECRET)

    def test_tampered_body_rejected(self):
        signature = _expected(BODY, SECRET)
        with pytest.raises(SignatureVerificationError):
            verify_signature(BODY + b" ", signature, SECRET)

    def test_empty_secret_fails_closed(self):
        with pytest.raises(SignatureVerificationError):
            verify_signature(BODY, _expected(BODY, ""), "")
