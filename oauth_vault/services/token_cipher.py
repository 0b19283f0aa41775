"""Authenticated symmetric encryption for tokens stored at rest."""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from oauth_vault.core.keys import KEY_SIZE, decode_key, generate_key
from oauth_vault.models.oauth import SealedSecret
from oauth_vault.services.errors import AuthenticationFailure, CipherError

NONCE_SIZE = 12
TAG_SIZE = 16


class TokenCipherService:
    """Seal and open short secret strings with AES-256-GCM under one master key."""

    def __init__(self, *, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Token encryption key must be {KEY_SIZE} bytes.")
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded_key: str) -> "TokenCipherService":
        """Build the cipher from a base64-encoded master key."""
        return cls(key=decode_key(encoded_key))

    def seal(self, plaintext: str) -> SealedSecret:
        """Encrypt ``plaintext`` under a fresh random nonce."""
        try:
            nonce = os.urandom(NONCE_SIZE)
        except (OSError, NotImplementedError) as exc:
            raise CipherError("Random source unavailable; cannot seal token.") from exc
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return SealedSecret(
            ciphertext=sealed[:-TAG_SIZE],
            nonce=nonce,
            tag=sealed[-TAG_SIZE:],
        )

    def open(self, ciphertext: bytes, nonce: bytes, tag: bytes) -> str:
        """Verify and decrypt a sealed value."""
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise AuthenticationFailure("Sealed token has a malformed nonce or tag.")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise AuthenticationFailure("Sealed token failed authentication.") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - requires a forged tag
            raise AuthenticationFailure("Sealed token is not valid UTF-8.") from exc


__all__ = ["TokenCipherService", "decode_key", "generate_key"]
