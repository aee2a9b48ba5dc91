"""Webhook signature verification with constant-time HMAC comparison.

Security contract:
- The digest is HMAC-SHA256 over the exact raw request body, hex encoded
- Comparison uses hmac.compare_digest() on the decoded bytes
- A token that is not valid hex is a mismatch, never an exception
- Missing secret -> ConfigurationError (fail closed)
"""

from __future__ import annotations

import binascii
import enum
import hashlib
import hmac

from .errors import AuthenticationError, ConfigurationError


class SignatureResult(enum.Enum):
    VALID = "valid"
    INVALID = "invalid"


def _secret_bytes(secret: str | bytes | None) -> bytes:
    if not secret:
        raise ConfigurationError("webhook secret is not configured")
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return secret


def compute_signature(raw_body: bytes, secret: str | bytes | None) -> str:
    """Return the lowercase hex HMAC-SHA256 digest of ``raw_body``."""
    return hmac.new(_secret_bytes(secret), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, token: str | None, secret: str | bytes | None) -> SignatureResult:
    """Verify a hex-encoded HMAC-SHA256 signature.

    Args:
        raw_body: Request body exactly as received
        token: Value of the signature header (may be None)
        secret: Shared webhook secret

    Returns:
        SignatureResult.VALID only on an exact digest match

    Raises:
        ConfigurationError: If no secret is configured
    """
    expected = hmac.new(_secret_bytes(secret), raw_body, hashlib.sha256).digest()

    if not token:
        return SignatureResult.INVALID

    try:
        supplied = binascii.unhexlify(token.strip().lower())
    except (binascii.Error, ValueError):
        return SignatureResult.INVALID

    if len(supplied) != len(expected):
        return SignatureResult.INVALID

    if hmac.compare_digest(expected, supplied):
        return SignatureResult.VALID
    return SignatureResult.INVALID


def authenticate(raw_body: bytes, token: str | None, secret: str | bytes | None) -> None:
    """
    Require a valid signature for ``raw_body``.

    Raises:
        ConfigurationError: If no secret is configured
        AuthenticationError: ``missing_signature`` or ``invalid_signature``
    """
    result = verify_signature(raw_body, token, secret)
    if not token:
        raise AuthenticationError("missing_signature")
    if result is not SignatureResult.VALID:
        raise AuthenticationError("invalid_signature")
