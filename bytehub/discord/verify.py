"""Discord interaction signature verification (Ed25519)."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from bytehub.shared.ids import decode_hex


SIGNATURE_HEADER = "x-signature-ed25519"
TIMESTAMP_HEADER = "x-signature-timestamp"

_PUBLIC_KEY_BYTES = 32
_SIGNATURE_BYTES = 64


def verify_discord_signature(
    public_key_hex: str,
    timestamp: str | None,
    body: bytes,
    signature_hex: str | None,
) -> bool:
    key_bytes = decode_hex(public_key_hex)
    signature = decode_hex(signature_hex)
    if timestamp is None or key_bytes is None or signature is None:
        return False
    if len(key_bytes) != _PUBLIC_KEY_BYTES or len(signature) != _SIGNATURE_BYTES:
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(key_bytes)
    except ValueError:
        return False
    try:
        public_key.verify(signature, timestamp.encode("utf-8") + body)
    except _BadSignature:
        return False
    return True
