"""
Helpers for retrieving and refreshing Google OAuth tokens.

``GoogleTokenService`` is the single entry point the rest of the application
uses to obtain a currently valid access token. Each call re-reads the vault,
refreshes at most once and classifies every failure so callers can choose
between a silent retry and a reconnect prompt.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from google.oauth2.credentials import Credentials

from oauth_vault.clients.google_auth import (
    GoogleOAuthClient,
    OAuthGrantRevokedError,
    OAuthProviderUnavailableError,
)
from oauth_vault.core.config import GoogleSettings, OAuthSettings
from oauth_vault.models.oauth import DecryptedPair
from oauth_vault.services.errors import (
    CipherError,
    CredentialNotFoundError,
    NoCredentialError,
    PersistFailedAfterRefreshError,
    ReconnectRequiredError,
    StoreError,
    TokenUnreadableError,
    TransientProviderError,
)
from oauth_vault.services.token_vault import TokenVault, utcnow

logger = logging.getLogger(__name__)


class GoogleTokenService:
    """Produce valid Google access tokens from the encrypted vault."""

    def __init__(
        self,
        vault: TokenVault,
        oauth_client: GoogleOAuthClient,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._vault = vault
        self._oauth = oauth_client
        self._google = google_settings
        self._oauth_settings = oauth_settings
        self._buffer = timedelta(seconds=oauth_settings.refresh_buffer_seconds)
        self._clock = clock

    async def get_valid_access_token(
        self,
        *,
        user_id: str,
        timeout: Optional[float] = None,
    ) -> str:
        """Return a plaintext access token that is not stale.

        Raises ``NoCredentialError``, ``ReconnectRequiredError``,
        ``TransientProviderError`` or ``PersistFailedAfterRefreshError``. A
        ``timeout`` bounds load, refresh and persist together; an exchange
        already in flight when it fires is allowed to finish in the background.
        """
        if timeout is None:
            return await self._acquire(user_id)
        try:
            return await asyncio.wait_for(self._acquire(user_id), timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Timed out after %.1fs acquiring token for user %s", timeout, user_id)
            raise TransientProviderError(
                f"Timed out acquiring an access token for user {user_id}."
            ) from exc

    async def get_credentials(
        self,
        *,
        user_id: str,
        timeout: Optional[float] = None,
    ) -> Credentials:
        """Wrap a valid access token for use with Google API client libraries."""
        access_token = await self.get_valid_access_token(user_id=user_id, timeout=timeout)
        return Credentials(
            token=access_token,
            client_id=self._google.client_id,
            scopes=list(self._oauth_settings.scopes),
        )

    async def _acquire(self, user_id: str) -> str:
        try:
            record = await asyncio.to_thread(self._vault.load, user_id)
        except CredentialNotFoundError as exc:
            raise NoCredentialError(f"User {user_id} has not connected Google.") from exc

        force_refresh = False
        try:
            pair = self._vault.decrypt_pair(record)
        except TokenUnreadableError as exc:
            if not exc.refresh_token_readable or exc.partial is None:
                raise ReconnectRequiredError("stored_token_unreadable") from exc
            pair = exc.partial
            force_refresh = True

        if not force_refresh and not self._vault.is_stale(pair.expiry, self._clock(), self._buffer):
            return pair.access_token  # type: ignore[return-value]

        logger.info(
            "Refreshing access token for user %s (reason=%s)",
            user_id,
            "unreadable" if force_refresh else "stale",
        )
        return await self._refresh(user_id, pair)

    async def _refresh(self, user_id: str, pair: DecryptedPair) -> str:
        task = asyncio.ensure_future(self._refresh_and_persist(user_id, pair))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_log_detached_refresh)
            raise

    async def _refresh_and_persist(self, user_id: str, pair: DecryptedPair) -> str:
        refreshed_at = self._clock()
        try:
            grant = await self._oauth.refresh_access_token(pair.refresh_token or "")
        except OAuthGrantRevokedError as exc:
            logger.warning("Refresh rejected for user %s (error=%s)", user_id, exc.error_code)
            raise ReconnectRequiredError(exc.error_code or "refresh_rejected") from exc
        except OAuthProviderUnavailableError as exc:
            raise TransientProviderError(str(exc)) from exc

        expires_at = refreshed_at + timedelta(seconds=grant.expires_in)
        try:
            if grant.refresh_token:
                await asyncio.to_thread(
                    self._vault.persist,
                    user_id,
                    grant.access_token,
                    grant.refresh_token,
                    expires_at,
                    grant.scope or pair.scope,
                )
            else:
                await asyncio.to_thread(
                    self._vault.persist_access_token_only,
                    user_id,
                    grant.access_token,
                    expires_at,
                )
        except (CipherError, CredentialNotFoundError, StoreError) as exc:
            logger.error(
                "Could not persist refreshed token for user %s: %s",
                user_id,
                type(exc).__name__,
            )
            raise PersistFailedAfterRefreshError(grant.access_token, expires_at) from exc

        return grant.access_token


def _log_detached_refresh(task: "asyncio.Future[str]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Token refresh finished after caller gave up: %s", type(exc).__name__)
    else:
        logger.info("Token refresh finished after caller gave up; result stored")


__all__ = ["GoogleTokenService"]
