"""
FastAPI routes for connecting Google and inspecting the credential vault.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from oauth_vault.clients.google_auth import OAuthStateError
from oauth_vault.dependencies import (
    get_app_settings,
    get_google_connection_service,
    get_google_oauth_client,
    get_oauth_state_encoder,
)
from oauth_vault.schemas import ConnectionStatusResponse, OAuthCallbackPayload
from oauth_vault.services.errors import (
    CipherError,
    NoCredentialError,
    ReconnectRequiredError,
    StoreError,
    TransientProviderError,
    VaultError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _vault_http_error(exc: VaultError) -> HTTPException:
    """Translate a vault outcome into the response the dashboard acts on."""
    if isinstance(exc, NoCredentialError):
        return HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail={"error": "not_connected", "action": "reconnect"},
        )
    if isinstance(exc, ReconnectRequiredError):
        return HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail={"error": exc.reason, "action": "reconnect"},
        )
    if isinstance(exc, (TransientProviderError, StoreError, CipherError)):
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail={"error": "temporarily_unavailable", "action": "retry"},
        )
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        detail={"error": "vault_error"},
    )


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = "&".join(filter(None, [parts.query, urlencode(params)]))
    return urlunsplit(parts._replace(query=query))


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    user_id: str = Query(..., description="User identifier initiating authentication."),
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to once the flow completes.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state_payload = {
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "user_id": user_id,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_client.build_authorization_url(state=state)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


@router.post("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    connections: Annotated[Any, Depends(get_google_connection_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> dict:
    """Validate the state, exchange the code and store the encrypted pair."""
    try:
        state_data = state_encoder.decode(payload.state)
    except OAuthStateError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing issued_at in state token.",
        )

    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Invalid issued_at in state token.",
        ) from exc

    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    user_id = state_data.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing user identifier in state token.",
        )

    try:
        record = await connections.connect(user_id=user_id, code=payload.code)
    except VaultError as exc:
        logger.warning("Google connect failed for user %s: %s", user_id, type(exc).__name__)
        raise _vault_http_error(exc) from exc

    return {
        "status": "connected",
        "redirect_to": state_data.get("redirect_to"),
        "scopes": list(record.scope),
    }


@router.get("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback_get(
    request: Request,
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    connections: Annotated[Any, Depends(get_google_connection_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str | None = Query(default=None, description="OAuth state token."),
    code: str | None = Query(default=None, description="Authorization code returned by Google."),
    error: str | None = Query(default=None, description="Error reported by the consent screen."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    accept_header = request.headers.get("accept", "")
    wants_redirect = redirect or "text/html" in accept_header.lower()
    frontend = str(settings.frontend_base_url) if settings.frontend_base_url else None

    if error or not state or not code:
        error_code = error or "missing_code"
        if frontend and wants_redirect:
            return RedirectResponse(
                url=_with_query(frontend, google_error=error_code),
                status_code=HTTPStatus.TEMPORARY_REDIRECT,
            )
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=error_code)

    try:
        result = await handle_google_oauth_callback(
            payload=OAuthCallbackPayload(state=state, code=code),
            state_encoder=state_encoder,
            connections=connections,
            settings=settings,
        )
    except HTTPException as exc:
        if frontend and wants_redirect:
            detail = exc.detail.get("error") if isinstance(exc.detail, dict) else "callback_failed"
            return RedirectResponse(
                url=_with_query(frontend, google_error=str(detail)),
                status_code=HTTPStatus.TEMPORARY_REDIRECT,
            )
        raise

    redirect_target = result.get("redirect_to") or frontend
    if redirect_target and wants_redirect:
        return RedirectResponse(
            url=_with_query(str(redirect_target), google_connected="1"),
            status_code=HTTPStatus.TEMPORARY_REDIRECT,
        )

    return JSONResponse(content=result)


@router.get(
    "/auth/google/status",
    status_code=HTTPStatus.OK,
    response_model=ConnectionStatusResponse,
)
async def get_google_connection_status(
    connections: Annotated[Any, Depends(get_google_connection_service)],
    user_id: str = Query(..., description="User whose integration should be inspected."),
) -> ConnectionStatusResponse:
    """Report whether a usable Google access token is available for the user."""
    status = await connections.status(user_id=user_id)
    return ConnectionStatusResponse(user_id=user_id, **status)


@router.delete("/auth/google/connection", status_code=HTTPStatus.OK)
async def disconnect_google(
    connections: Annotated[Any, Depends(get_google_connection_service)],
    user_id: str = Query(..., description="User revoking the integration."),
) -> dict:
    """Delete the stored credential pair for the user."""
    try:
        removed = await connections.disconnect(user_id=user_id)
    except StoreError as exc:
        raise _vault_http_error(exc) from exc
    return {"status": "disconnected", "removed": removed}


__all__ = ["router"]
