"""Expose constructed client wrappers."""

from .google_auth import GoogleOAuthClient, OAuthStateEncoder
from .sqlite_store import SQLiteCredentialStore
from .supabase_store import SupabaseCredentialStore

__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "SQLiteCredentialStore",
    "SupabaseCredentialStore",
]
