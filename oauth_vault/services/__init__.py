"""Service layer exports."""

from .errors import (
    AuthenticationFailure,
    CipherError,
    CredentialNotFoundError,
    NoCredentialError,
    PersistFailedAfterRefreshError,
    ReconnectRequiredError,
    StoreError,
    TokenAcquisitionError,
    TokenUnreadableError,
    TransientProviderError,
    VaultError,
)
from .google_connections import GoogleConnectionService
from .google_tokens import GoogleTokenService
from .token_cipher import TokenCipherService
from .token_vault import TokenVault, is_stale

__all__ = [
    "AuthenticationFailure",
    "CipherError",
    "CredentialNotFoundError",
    "GoogleConnectionService",
    "GoogleTokenService",
    "NoCredentialError",
    "PersistFailedAfterRefreshError",
    "ReconnectRequiredError",
    "StoreError",
    "TokenAcquisitionError",
    "TokenCipherService",
    "TokenUnreadableError",
    "TokenVault",
    "TransientProviderError",
    "VaultError",
    "is_stale",
]
