"""GitHub webhook signature verification (HMAC-SHA256)."""

from __future__ import annotations

import hashlib
import hmac

from bytehub.shared.ids import decode_hex


SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


def verify_github_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    """Check ``sha256=<hex>`` against the HMAC of the raw body.

    Fails closed on an unset secret, a missing or malformed header, or a digest
    of the wrong length. The comparison is constant-time.
    """
    if not secret or not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = decode_hex(signature[len(SIGNATURE_PREFIX) :])
    if expected is None:
        return False
    computed = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    if len(computed) != len(expected):
        return False
    return hmac.compare_digest(computed, expected)


def sign_payload(secret: str, payload: bytes) -> str:
    """Build the header value GitHub would send for ``payload``."""

    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"
