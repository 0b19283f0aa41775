"""Master key encoding shared by the settings layer and the token cipher."""

from __future__ import annotations

import base64
import binascii

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32


def decode_key(encoded_key: str) -> bytes:
    """Decode a standard or URL-safe base64 master key, requiring exactly 32 bytes."""
    normalized = encoded_key.strip().replace("-", "+").replace("_", "/")
    try:
        key = base64.b64decode(normalized.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise ValueError("Token encryption key must be valid base64.") from exc
    if len(key) != KEY_SIZE:
        raise ValueError(f"Token encryption key must decode to {KEY_SIZE} bytes.")
    return key


def generate_key() -> str:
    """Return a fresh base64-encoded master key."""
    return base64.b64encode(AESGCM.generate_key(bit_length=KEY_SIZE * 8)).decode("ascii")


__all__ = ["KEY_SIZE", "decode_key", "generate_key"]
