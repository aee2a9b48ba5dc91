import hashlib
import hmac

import pytest

from ease_core.errors import AuthenticationError, ConfigurationError
from ease_core.signature import SignatureResult, authenticate, compute_signature, verify_signature

BODY = b'{"buyer_id":"42","amount":50}'
SECRET = "s3cret"


def _flip_last_hex(signature: str) -> str:
    last = signature[-1]
    return signature[:-1] + ("0" if last != "0" else "1")


def test_compute_signature_matches_hmac_sha256():
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert compute_signature(BODY, SECRET) == expected


def test_verify_signature_accepts_exact_digest():
    signature = compute_signature(BODY, SECRET)
    assert verify_signature(BODY, signature, SECRET) is SignatureResult.VALID


def test_verify_signature_accepts_uppercase_hex():
    signature = compute_signature(BODY, SECRET).upper()
    assert verify_signature(BODY, signature, SECRET) is SignatureResult.VALID


def test_verify_signature_rejects_flipped_character():
    signature = _flip_last_hex(compute_signature(BODY, SECRET))
    assert verify_signature(BODY, signature, SECRET) is SignatureResult.INVALID


def test_verify_signature_rejects_body_changes():
    signature = compute_signature(BODY, SECRET)
    assert verify_signature(BODY + b" ", signature, SECRET) is SignatureResult.INVALID


@pytest.mark.parametrize("token", [None, "", "not-hex", "abc", "ab" * 31, "ab" * 33])
def test_verify_signature_rejects_malformed_tokens(token):
    assert verify_signature(BODY, token, SECRET) is SignatureResult.INVALID


@pytest.mark.parametrize("secret", [None, ""])
def test_verify_signature_requires_secret(secret):
    with pytest.raises(ConfigurationError):
        verify_signature(BODY, "00" * 32, secret)


def test_verify_signature_with_other_secret_is_invalid():
    signature = compute_signature(BODY, "another")
    assert verify_signature(BODY, signature, SECRET) is SignatureResult.INVALID


def test_authenticate_passes_valid_signature():
    authenticate(BODY, compute_signature(BODY, SECRET), SECRET)


@pytest.mark.parametrize(("token", "category"), [("", "missing_signature"), ("00" * 32, "invalid_signature")])
def test_authenticate_raises_with_category(token, category):
    with pytest.raises(AuthenticationError) as exc_info:
        authenticate(BODY, token, SECRET)
    assert exc_info.value.category == category
    assert str(exc_info.value) == category.replace("_", " ")
