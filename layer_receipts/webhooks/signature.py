"""
Webhook signature validation.

Layer signs each delivery with a hex HMAC-SHA1 of the UTF-8 encoded JSON
body, keyed with the secret given at registration time, and sends it in the
`layer-webhook-signature` header.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "layer-webhook-signature"

__all__ = ["SIGNATURE_HEADER", "compute_signature", "validate"]


def _utf8(payload: bytes | str) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else payload


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA1 of the UTF-8 payload."""
    digest = hmac.new(secret.encode("utf-8"), _utf8(payload), hashlib.sha1)
    return digest.hexdigest()


def validate(payload: bytes | str, secret: str, provided_signature: str | None) -> bool:
    """
    Check a delivery signature.

    Args:
        payload: Raw request body (bytes) or its decoded text.
        secret: Shared webhook secret.
        provided_signature: Value of the signature header, if any.

    Returns:
        True only when the provided signature equals the computed one.
    """
    if not provided_signature:
        return False
    return hmac.compare_digest(compute_signature(payload, secret), provided_signature)
