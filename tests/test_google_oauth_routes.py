try:
    from . import _bootstrap, _fakes  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401
    import _fakes  # type: ignore

import copy
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauth_vault.main import app
from oauth_vault.services.google_connections import GoogleConnectionService
from oauth_vault.services.google_tokens import GoogleTokenService
from oauth_vault.services.token_cipher import TokenCipherService
from oauth_vault.services.token_vault import TokenVault


@pytest.fixture()
def oauth_overrides():
    from oauth_vault import dependencies
    from oauth_vault.core.config import get_settings

    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    dummy_client = _fakes.FakeOAuthClient(access_token="ya29.first", refresh_token="1//first")
    store = _fakes.InMemoryStore()
    vault = TokenVault(store, TokenCipherService.from_base64(_bootstrap.TEST_ENCRYPTION_KEY))
    tokens = GoogleTokenService(
        vault=vault,
        oauth_client=dummy_client,
        google_settings=base_settings.google,
        oauth_settings=base_settings.oauth,
    )
    connections = GoogleConnectionService(vault, dummy_client, tokens)

    overrides = {
        dependencies.get_google_oauth_client: lambda: dummy_client,
        dependencies.get_google_connection_service: lambda: connections,
        dependencies.get_app_settings: lambda: base_settings,
    }

    app.dependency_overrides.update(overrides)

    yield dummy_client, store, vault, base_settings

    app.dependency_overrides.clear()


def _http() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_health() -> None:
    async with _http() as client:
        response = await client.get("/api/health")

    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(oauth_overrides):
    dummy_client, _, _, _ = oauth_overrides
    async with _http() as client:
        response = await client.get("/api/auth/google/authorize", params={"user_id": "abc123"})

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://")
    assert dummy_client.states == [data["state"]]


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with _http() as client:
        response = await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "abc123"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")


@pytest.mark.anyio
async def test_callback_stores_encrypted_pair(oauth_overrides):
    dummy_client, store, vault, _ = oauth_overrides

    async with _http() as client:
        await client.get("/api/auth/google/authorize", params={"user_id": "user-1"})
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
        )

    assert callback_resp.status_code == 200
    assert callback_resp.json()["status"] == "connected"
    assert dummy_client.codes == ["oauth-code"]
    assert "ya29.first" not in repr(store.rows["user-1"])
    assert vault.decrypt_pair(vault.load("user-1")).refresh_token == "1//first"


@pytest.mark.anyio
async def test_callback_rejects_tampered_state(oauth_overrides):
    async with _http() as client:
        response = await client.post(
            "/api/auth/google/callback",
            json={"state": "bm90LWEtdmFsaWQtc3RhdGU=", "code": "oauth-code"},
        )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_without_refresh_token_asks_for_reconnect(oauth_overrides):
    dummy_client, store, _, _ = oauth_overrides
    dummy_client.refresh_token = None

    async with _http() as client:
        await client.get("/api/auth/google/authorize", params={"user_id": "user-1"})
        response = await client.get(
            "/api/auth/google/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
        )

    assert response.status_code == 409
    assert response.json()["detail"] == {"error": "missing_refresh_token", "action": "reconnect"}
    assert store.rows == {}


@pytest.mark.anyio
async def test_callback_redirects_when_frontend_available(oauth_overrides):
    dummy_client, _, _, settings = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/dashboard"

    async with _http() as client:
        await client.get("/api/auth/google/authorize", params={"user_id": "user-2"})
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert callback_resp.status_code == 307
    assert callback_resp.headers["location"] == "https://app.example.com/dashboard?google_connected=1"


@pytest.mark.anyio
async def test_callback_consent_error_redirects_with_code(oauth_overrides):
    _, _, _, settings = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/dashboard"

    async with _http() as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"error": "access_denied"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    location = urlparse(response.headers["location"])
    assert parse_qs(location.query) == {"google_error": ["access_denied"]}


@pytest.mark.anyio
async def test_status_and_disconnect(oauth_overrides):
    _, _, vault, _ = oauth_overrides
    vault.persist(
        "user-3",
        "ya29.live",
        "1//live",
        datetime.now(timezone.utc) + timedelta(hours=1),
        ["scope-a"],
    )

    async with _http() as client:
        status_resp = await client.get("/api/auth/google/status", params={"user_id": "user-3"})
        delete_resp = await client.delete("/api/auth/google/connection", params={"user_id": "user-3"})
        after_resp = await client.get("/api/auth/google/status", params={"user_id": "user-3"})

    assert status_resp.json()["state"] == "connected"
    assert "ya29.live" not in status_resp.text
    assert delete_resp.json() == {"status": "disconnected", "removed": True}
    assert after_resp.json()["state"] == "not_connected"
