"""
FastAPI application entrypoint for the credential vault service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from oauth_vault import __version__
from oauth_vault.api.routes import router as api_router
from oauth_vault.core.config import get_settings
from oauth_vault.core.logging import configure_logging
from oauth_vault.dependencies.clients import close_credential_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Release pooled store connections on shutdown."""
    yield
    close_credential_store()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Marketing Dashboard OAuth Vault",
        version=__version__,
        description="Encrypted Google credential storage and token refresh for the dashboard.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
