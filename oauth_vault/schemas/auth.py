"""Schemas related to OAuth flows and connection state."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class ConnectionStatusResponse(BaseModel):
    """Connection health for a user's Google integration. Never carries tokens."""

    user_id: str
    state: str = Field(
        ...,
        description=(
            "One of connected, not_connected, reconnect_required, "
            "temporarily_unavailable or degraded."
        ),
    )
    connected: bool
    reason: Optional[str] = None
    expires_at: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)


__all__ = ["ConnectionStatusResponse", "OAuthCallbackPayload"]
