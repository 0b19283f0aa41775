"""
Google OAuth utilities.

These helpers manage the consent flow and the token endpoint exchanges, and
classify endpoint failures so callers can tell revoked consent apart from a
provider that is temporarily unavailable.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from oauth_vault.core.config import GoogleSettings, OAuthSettings
from oauth_vault.models.oauth import TokenGrant

logger = logging.getLogger(__name__)


class OAuthStateError(Exception):
    """Raised when an OAuth state token is malformed or its signature is wrong."""


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise OAuthStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise OAuthStateError("Invalid OAuth state signature.")
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint does not yield a usable grant."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class OAuthGrantRevokedError(OAuthTokenExchangeError):
    """The provider rejected the grant itself (revoked, expired or misconfigured)."""


class OAuthProviderUnavailableError(OAuthTokenExchangeError):
    """The provider failed transiently (timeout, network, 5xx or rate limiting)."""


class GoogleOAuthClient:
    """Build Google authorization URLs and talk to the token endpoint."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._transport = transport

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": str(self._google.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair.

        The returned grant's ``refresh_token`` may be None when the user had
        already granted offline access; callers decide how to treat that.
        """
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": str(self._google.redirect_uri),
            "grant_type": "authorization_code",
        }
        return await self._post_token_request(payload)

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a stored refresh token for a new access token.

        Exactly one request is made; retry policy belongs to the caller.
        """
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        return await self._post_token_request(payload)

    async def _post_token_request(self, payload: Dict[str, str]) -> TokenGrant:
        grant_type = payload["grant_type"]
        try:
            async with httpx.AsyncClient(
                timeout=self._oauth.token_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self.TOKEN_URL, data=payload)
        except httpx.TimeoutException as exc:
            logger.warning("Token endpoint timed out (grant_type=%s)", grant_type)
            raise OAuthProviderUnavailableError("Token endpoint timed out.") from exc
        except httpx.TransportError as exc:
            logger.warning("Token endpoint unreachable (grant_type=%s): %s", grant_type, type(exc).__name__)
            raise OAuthProviderUnavailableError("Token endpoint unreachable.") from exc

        if response.is_success:
            return self._parse_grant(response)
        raise self._classify_failure(response, grant_type)

    @staticmethod
    def _parse_grant(response: httpx.Response) -> TokenGrant:
        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthProviderUnavailableError(
                "Token endpoint returned a non-JSON body.",
                status_code=response.status_code,
            ) from exc
        if not isinstance(token_payload, dict):
            token_payload = {}

        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise OAuthProviderUnavailableError(
                "Incomplete token payload returned from Google.",
                status_code=response.status_code,
            )

        try:
            return TokenGrant(
                access_token=access_token,
                expires_in=int(expires_in),
                token_type=token_payload.get("token_type") or "Bearer",
                refresh_token=token_payload.get("refresh_token") or None,
                scope=tuple((token_payload.get("scope") or "").split()),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise OAuthProviderUnavailableError(
                "Malformed token payload returned from Google.",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _classify_failure(response: httpx.Response, grant_type: str) -> OAuthTokenExchangeError:
        error_code: Optional[str] = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            error_code = body["error"]

        status_code = response.status_code
        logger.warning(
            "Token endpoint rejected request (grant_type=%s, status=%s, error=%s)",
            grant_type,
            status_code,
            error_code,
        )
        message = f"Token endpoint returned {status_code}: {error_code or 'unknown_error'}"
        if status_code >= 500 or status_code == httpx.codes.TOO_MANY_REQUESTS:
            return OAuthProviderUnavailableError(
                message, error_code=error_code, status_code=status_code
            )
        return OAuthGrantRevokedError(message, error_code=error_code, status_code=status_code)


__all__ = [
    "GoogleOAuthClient",
    "OAuthGrantRevokedError",
    "OAuthProviderUnavailableError",
    "OAuthStateEncoder",
    "OAuthStateError",
    "OAuthTokenExchangeError",
]
