from __future__ import annotations

import pytest

from app.payments.errors import ConfigurationError, SignatureInvalid
from app.webhooks.signature import SignatureVerifier, compute_signature, verify

SECRET = b"sk_test_signing_secret"
BODY = b'{"event":"charge.success","data":{"reference":"R-1","id":9}}'


def test_valid_signature_accepted():
    assert verify(BODY, compute_signature(BODY, SECRET), SECRET) is True


def test_uppercase_and_padded_hex_accepted():
    sig = compute_signature(BODY, SECRET).upper()
    assert verify(BODY, f"  {sig} ", SECRET) is True


def test_tampered_body_rejected():
    sig = compute_signature(BODY, SECRET)
    assert verify(BODY.replace(b"R-1", b"R-2"), sig, SECRET) is False


def test_wrong_secret_rejected():
    sig = compute_signature(BODY, b"another_secret")
    assert verify(BODY, sig, SECRET) is False


@pytest.mark.parametrize("header", [None, "", "abc", "z" * 128, compute_signature(BODY, SECRET)[:-2]])
def test_malformed_headers_rejected(header):
    assert verify(BODY, header, SECRET) is False


def test_empty_secret_never_verifies():
    assert verify(BODY, compute_signature(BODY, b""), b"") is False


def test_non_bytes_body_rejected():
    sig = compute_signature(BODY, SECRET)
    assert verify(BODY.decode("utf-8"), sig, SECRET) is False  # type: ignore[arg-type]


def test_verifier_requires_secret():
    with pytest.raises(ConfigurationError):
        SignatureVerifier("")
    with pytest.raises(ConfigurationError):
        SignatureVerifier("   ")


def test_verifier_accepts_str_secret():
    verifier = SignatureVerifier(SECRET.decode("utf-8"))
    assert verifier.verify(BODY, compute_signature(BODY, SECRET)) is True
    assert verifier.verify(BODY, None) is False


def test_require_valid_raises_signature_invalid():
    verifier = SignatureVerifier(SECRET)
    verifier.require_valid(BODY, compute_signature(BODY, SECRET))
    with pytest.raises(SignatureInvalid):
        verifier.require_valid(BODY, "00" * 64)
