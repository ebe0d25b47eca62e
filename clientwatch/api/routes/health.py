"""Health check endpoint for the authorization service."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

from clientwatch.config import APP_VERSION

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(request: Request) -> dict[str, Any]:
    """Service status plus whether a Basecamp credential has been stored.

    Reads only the record timestamp; tokens are never decrypted here.
    """
    updated_at = request.app.state.credentials.token_repo.get_updated_at()

    return {
        "status": "healthy",
        "service": "ClientWatch",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "credential": {
            "stored": updated_at is not None,
            "updated_at": updated_at.isoformat() if updated_at else None,
        },
    }
