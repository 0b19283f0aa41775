"""
Error taxonomy for the credential vault.

Cipher and vault errors describe *what* went wrong with stored material; the
``TokenAcquisitionError`` family describes what the caller should do about it.
"""

from __future__ import annotations

from datetime import datetime
from typing import FrozenSet, Optional

from oauth_vault.models.oauth import DecryptedPair


class VaultError(Exception):
    """Base class for every credential vault failure."""


class CipherError(VaultError):
    """The cipher could not produce a sealed value (random source unavailable)."""


class AuthenticationFailure(VaultError):
    """A sealed value failed tag verification or could not be decoded."""


class StoreError(VaultError):
    """The record store could not complete an operation."""


class CredentialNotFoundError(VaultError):
    """No credential record exists for the requested user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No credential stored for user {user_id}.")
        self.user_id = user_id


class TokenUnreadableError(VaultError):
    """One or both sealed tokens of a record could not be opened."""

    def __init__(
        self,
        unreadable_fields: FrozenSet[str],
        *,
        partial: Optional[DecryptedPair] = None,
    ) -> None:
        fields = ", ".join(sorted(unreadable_fields))
        super().__init__(f"Stored token unreadable: {fields}.")
        self.unreadable_fields = unreadable_fields
        self.partial = partial

    @property
    def refresh_token_readable(self) -> bool:
        return "refresh_token" not in self.unreadable_fields


class TokenAcquisitionError(VaultError):
    """Base class for outcomes of ``get_valid_access_token`` other than success."""


class NoCredentialError(TokenAcquisitionError):
    """The user never connected the integration."""


class ReconnectRequiredError(TokenAcquisitionError):
    """Stored material is unusable or consent was revoked; the user must re-consent."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Reconnect required: {reason}")
        self.reason = reason


class TransientProviderError(TokenAcquisitionError):
    """The provider was unreachable or failed temporarily; retry later."""


class PersistFailedAfterRefreshError(TokenAcquisitionError):
    """A fresh token was minted but could not be stored.

    The token is still valid for the current request and is exposed as
    ``access_token``.
    """

    def __init__(self, access_token: str, expires_at: datetime) -> None:
        super().__init__("Refreshed access token could not be persisted.")
        self.access_token = access_token
        self.expires_at = expires_at

    def __repr__(self) -> str:
        return f"PersistFailedAfterRefreshError(expires_at={self.expires_at.isoformat()!r})"


__all__ = [
    "AuthenticationFailure",
    "CipherError",
    "CredentialNotFoundError",
    "NoCredentialError",
    "PersistFailedAfterRefreshError",
    "ReconnectRequiredError",
    "StoreError",
    "TokenAcquisitionError",
    "TokenUnreadableError",
    "TransientProviderError",
    "VaultError",
]
