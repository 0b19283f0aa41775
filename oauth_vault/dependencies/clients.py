"""
Factory functions providing the process-wide vault components as FastAPI
dependencies. Each is built once from configuration and shared explicitly.
"""

from functools import lru_cache

from oauth_vault.clients import (
    GoogleOAuthClient,
    OAuthStateEncoder,
    SQLiteCredentialStore,
    SupabaseCredentialStore,
)
from oauth_vault.core.config import get_settings
from oauth_vault.services import (
    GoogleConnectionService,
    GoogleTokenService,
    TokenCipherService,
    TokenVault,
)
from oauth_vault.services.token_vault import CredentialStore


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Google client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.google.client_secret)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(settings.google, settings.oauth)


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the configured credential record store."""
    store_settings = _settings().store
    if store_settings.backend == "supabase":
        return SupabaseCredentialStore(
            base_url=str(store_settings.supabase_url),
            service_role_key=store_settings.supabase_service_role_key,
            table=store_settings.supabase_table,
            timeout=store_settings.supabase_timeout_seconds,
        )
    return SQLiteCredentialStore(store_settings.sqlite_path)


def close_credential_store() -> None:
    """Release the store's HTTP connection pool if one was opened."""
    if not get_credential_store.cache_info().currsize:
        return
    store = get_credential_store()
    if isinstance(store, SupabaseCredentialStore):
        store.close()


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide the AEAD cipher bound to the master key."""
    settings = _settings()
    return TokenCipherService.from_base64(settings.security.token_encryption_key)


@lru_cache()
def get_token_vault() -> TokenVault:
    """Provide the encrypted token vault."""
    return TokenVault(get_credential_store(), get_token_cipher_service())


@lru_cache()
def get_google_token_service() -> GoogleTokenService:
    """Provide the refresh orchestrator for Google access tokens."""
    settings = _settings()
    return GoogleTokenService(
        vault=get_token_vault(),
        oauth_client=get_google_oauth_client(),
        google_settings=settings.google,
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_google_connection_service() -> GoogleConnectionService:
    """Provide the connect/disconnect/status service."""
    return GoogleConnectionService(
        vault=get_token_vault(),
        oauth_client=get_google_oauth_client(),
        token_service=get_google_token_service(),
    )


__all__ = [
    "close_credential_store",
    "get_credential_store",
    "get_google_connection_service",
    "get_google_oauth_client",
    "get_google_token_service",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_vault",
]
