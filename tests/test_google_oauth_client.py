try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauth_vault.clients.google_auth import (
    GoogleOAuthClient,
    OAuthGrantRevokedError,
    OAuthProviderUnavailableError,
    OAuthStateEncoder,
    OAuthStateError,
)
from oauth_vault.core.config import GoogleSettings, OAuthSettings


def _client(handler) -> tuple[GoogleOAuthClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    settings = GoogleSettings(
        GOOGLE_CLIENT_ID="client",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REDIRECT_URI="https://example.com/callback",
    )
    client = GoogleOAuthClient(
        settings, OAuthSettings(), transport=httpx.MockTransport(_record)
    )
    return client, seen


@pytest.mark.asyncio
async def test_refresh_posts_form_encoded_grant() -> None:
    client, seen = _client(
        lambda request: httpx.Response(
            200, json={"access_token": "ya29.new", "expires_in": 3599, "token_type": "Bearer"}
        )
    )

    grant = await client.refresh_access_token("1//refresh")

    assert grant.access_token == "ya29.new"
    assert grant.expires_in == 3599
    assert grant.refresh_token is None
    assert len(seen) == 1
    assert str(seen[0].url) == GoogleOAuthClient.TOKEN_URL
    assert seen[0].headers["content-type"] == "application/x-www-form-urlencoded"
    body = parse_qs(seen[0].content.decode())
    assert body == {
        "client_id": ["client"],
        "client_secret": ["secret"],
        "refresh_token": ["1//refresh"],
        "grant_type": ["refresh_token"],
    }


@pytest.mark.asyncio
async def test_invalid_grant_is_classified_as_revoked() -> None:
    client, _ = _client(
        lambda request: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
        )
    )

    with pytest.raises(OAuthGrantRevokedError) as excinfo:
        await client.refresh_access_token("1//refresh")

    assert excinfo.value.error_code == "invalid_grant"
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 503, 429])
async def test_server_errors_and_rate_limits_are_transient(status_code: int) -> None:
    client, seen = _client(lambda request: httpx.Response(status_code, text="busy"))

    with pytest.raises(OAuthProviderUnavailableError):
        await client.refresh_access_token("1//refresh")
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = _client(_timeout)

    with pytest.raises(OAuthProviderUnavailableError):
        await client.refresh_access_token("1//refresh")


@pytest.mark.asyncio
async def test_connection_error_is_transient() -> None:
    def _refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client, _ = _client(_refused)

    with pytest.raises(OAuthProviderUnavailableError):
        await client.refresh_access_token("1//refresh")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"token_type": "Bearer"},
        {"access_token": "ya29.fresh", "expires_in": "soon"},
        {"access_token": 123, "expires_in": 3600},
        {"access_token": "ya29.fresh", "expires_in": 3600, "scope": ["scope-a"]},
    ],
)
async def test_incomplete_success_payload_is_transient(payload: dict) -> None:
    client, _ = _client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(OAuthProviderUnavailableError) as excinfo:
        await client.refresh_access_token("1//refresh")

    assert excinfo.value.status_code == 200


@pytest.mark.asyncio
async def test_code_exchange_returns_refresh_token_and_scopes() -> None:
    client, seen = _client(
        lambda request: httpx.Response(
            200,
            json={
                "access_token": "ya29.first",
                "refresh_token": "1//first",
                "expires_in": 3600,
                "scope": "scope-a scope-b",
                "token_type": "Bearer",
            },
        )
    )

    grant = await client.exchange_authorization_code("auth-code")

    assert grant.refresh_token == "1//first"
    assert grant.scope == ("scope-a", "scope-b")
    body = parse_qs(seen[0].content.decode())
    assert body["grant_type"] == ["authorization_code"]
    assert body["redirect_uri"] == ["https://example.com/callback"]


def test_authorization_url_requests_offline_consent() -> None:
    client, _ = _client(lambda request: httpx.Response(500))

    url = urlparse(client.build_authorization_url(state="abc"))
    params = parse_qs(url.query)

    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["abc"]
    assert "https://www.googleapis.com/auth/analytics.readonly" in params["scope"][0].split()


def test_grant_repr_hides_tokens() -> None:
    from oauth_vault.models.oauth import TokenGrant

    grant = TokenGrant(access_token="ya29.secret", expires_in=10, refresh_token="1//secret")

    assert "secret" not in repr(grant)


def test_state_encoder_roundtrip_and_tamper_detection() -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")
    state = encoder.encode({"user_id": "user-1"})

    assert encoder.decode(state) == {"user_id": "user-1"}
    with pytest.raises(OAuthStateError):
        OAuthStateEncoder(secret_key="other").decode(state)
