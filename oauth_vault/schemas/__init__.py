"""Public schema exports."""

from .auth import ConnectionStatusResponse, OAuthCallbackPayload

__all__ = ["ConnectionStatusResponse", "OAuthCallbackPayload"]
