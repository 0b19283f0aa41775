"""Connect, disconnect and inspect a user's Google integration."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from oauth_vault.clients.google_auth import (
    GoogleOAuthClient,
    OAuthGrantRevokedError,
    OAuthProviderUnavailableError,
)
from oauth_vault.models.oauth import CredentialRecord
from oauth_vault.services.errors import (
    CredentialNotFoundError,
    NoCredentialError,
    PersistFailedAfterRefreshError,
    ReconnectRequiredError,
    StoreError,
    TransientProviderError,
)
from oauth_vault.services.google_tokens import GoogleTokenService
from oauth_vault.services.token_vault import TokenVault, utcnow

logger = logging.getLogger(__name__)

CONNECTED = "connected"
NOT_CONNECTED = "not_connected"
RECONNECT_REQUIRED = "reconnect_required"
TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"
DEGRADED = "degraded"


class GoogleConnectionService:
    """Owns the consent lifecycle around the vault and the token service."""

    def __init__(
        self,
        vault: TokenVault,
        oauth_client: GoogleOAuthClient,
        token_service: GoogleTokenService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._vault = vault
        self._oauth = oauth_client
        self._tokens = token_service
        self._clock = clock

    async def connect(self, *, user_id: str, code: str) -> CredentialRecord:
        """Exchange an authorization code and store the full credential pair.

        A grant without a refresh token is refused; any previously stored
        pair is left untouched and the user is asked to re-consent.
        """
        issued_at = self._clock()
        try:
            grant = await self._oauth.exchange_authorization_code(code)
        except OAuthGrantRevokedError as exc:
            raise ReconnectRequiredError(exc.error_code or "code_exchange_rejected") from exc
        except OAuthProviderUnavailableError as exc:
            raise TransientProviderError(str(exc)) from exc

        if not grant.refresh_token:
            logger.warning("Code exchange for user %s returned no refresh token", user_id)
            raise ReconnectRequiredError("missing_refresh_token")

        expires_at = issued_at + timedelta(seconds=grant.expires_in)
        record = await asyncio.to_thread(
            self._vault.persist,
            user_id,
            grant.access_token,
            grant.refresh_token,
            expires_at,
            grant.scope,
        )
        logger.info("Connected Google for user %s", user_id)
        return record

    async def disconnect(self, *, user_id: str) -> bool:
        """Delete the stored pair. Returns whether one existed."""
        return await asyncio.to_thread(self._vault.delete, user_id)

    async def status(self, *, user_id: str, timeout: Optional[float] = None) -> dict:
        """Report whether a usable access token can be produced for ``user_id``."""
        try:
            await self._tokens.get_valid_access_token(user_id=user_id, timeout=timeout)
        except NoCredentialError:
            return {"state": NOT_CONNECTED, "connected": False}
        except ReconnectRequiredError as exc:
            return {"state": RECONNECT_REQUIRED, "connected": False, "reason": exc.reason}
        except (TransientProviderError, StoreError):
            return {"state": TEMPORARILY_UNAVAILABLE, "connected": True}
        except PersistFailedAfterRefreshError as exc:
            return {
                "state": DEGRADED,
                "connected": True,
                "expires_at": exc.expires_at.isoformat(),
            }

        try:
            record = await asyncio.to_thread(self._vault.load, user_id)
        except CredentialNotFoundError:
            return {"state": NOT_CONNECTED, "connected": False}
        except StoreError:
            return {"state": TEMPORARILY_UNAVAILABLE, "connected": True}
        return {
            "state": CONNECTED,
            "connected": True,
            "expires_at": record.expiry.isoformat(),
            "scopes": list(record.scope),
        }


__all__ = [
    "CONNECTED",
    "DEGRADED",
    "GoogleConnectionService",
    "NOT_CONNECTED",
    "RECONNECT_REQUIRED",
    "TEMPORARILY_UNAVAILABLE",
]
