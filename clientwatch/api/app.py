"""FastAPI server for the Basecamp authorization handshake"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from clientwatch.api.routes.auth import router as auth_router
from clientwatch.api.routes.health import router as health_router
from clientwatch.basecamp.gateway import BasecampGateway
from clientwatch.basecamp.oauth import CredentialManager
from clientwatch.config import API_HOST, API_PORT, APP_VERSION, Settings, load_settings
from clientwatch.infrastructure.database import init_database
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import log_event
from clientwatch.storage.token_repository import TokenRepository

logger = get_logger(__name__)


def create_app(settings: Settings, credentials: CredentialManager) -> FastAPI:
    """Build the app around an explicitly constructed credential manager."""
    app = FastAPI(title="ClientWatch Authorization", version=APP_VERSION)
    app.state.settings = settings
    app.state.credentials = credentials
    app.state.gateway = BasecampGateway.from_settings(settings, credentials)

    app.include_router(health_router)
    app.include_router(auth_router)

    log_event("api.startup", service="clientwatch-auth", version=APP_VERSION)
    return app


def main() -> None:
    load_dotenv()

    settings = load_settings()
    logger.info("Initializing database schema...")
    init_database()

    credentials = CredentialManager.from_settings(settings, TokenRepository())
    uvicorn.run(create_app(settings, credentials), host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
