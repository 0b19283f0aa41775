"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    close_credential_store,
    get_credential_store,
    get_google_connection_service,
    get_google_oauth_client,
    get_google_token_service,
    get_oauth_state_encoder,
    get_token_cipher_service,
    get_token_vault,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "close_credential_store",
    "get_app_settings",
    "get_credential_store",
    "get_google_connection_service",
    "get_google_oauth_client",
    "get_google_token_service",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_vault",
]
