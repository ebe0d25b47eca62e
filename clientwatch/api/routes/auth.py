"""Authorization endpoints for the Basecamp web-server OAuth flow.

- / - redirect to Launchpad's authorization page
- /callback - exchange the one-time code and store the tokens
- /profile - fetch my/profile.json to prove the stored credential works
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from clientwatch.basecamp.gateway import BasecampGateway
from clientwatch.basecamp.oauth import CredentialManager
from clientwatch.exceptions import (
    ApiRequestError,
    AuthExchangeError,
    AuthRefreshError,
    CredentialEncryptionError,
    MissingCredentialsError,
    UnauthorizedError,
)
from clientwatch.observability.logging import get_logger

router = APIRouter(tags=["auth"])

logger = get_logger(__name__)


def get_credentials(request: Request) -> CredentialManager:
    return request.app.state.credentials


def get_gateway(request: Request) -> BasecampGateway:
    return request.app.state.gateway


@router.get("/")
def start_authorization(
    credentials: CredentialManager = Depends(get_credentials),
) -> RedirectResponse:
    return RedirectResponse(credentials.authorization_url())


@router.get("/callback", response_class=HTMLResponse)
def authorization_callback(
    code: str | None = None,
    credentials: CredentialManager = Depends(get_credentials),
) -> HTMLResponse:
    """Receive the one-time code from Launchpad and store the credential pair."""
    if not code:
        raise HTTPException(status_code=400, detail="Authorization code not received.")

    try:
        credentials.authorize(code)
    except AuthExchangeError as exc:
        logger.error("Error exchanging code for token: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to obtain access token.") from exc

    return HTMLResponse(
        "<p>Token synced successfully. You can now use the app.</p>"
        '<a href="/profile">View profile</a>'
    )


@router.get("/profile")
def profile(gateway: BasecampGateway = Depends(get_gateway)) -> dict[str, Any]:
    try:
        return gateway.get("my/profile.json")
    except (MissingCredentialsError, CredentialEncryptionError) as exc:
        raise HTTPException(
            status_code=401, detail="No tokens found. Please authorize first."
        ) from exc
    except (UnauthorizedError, AuthRefreshError) as exc:
        logger.error("Error refreshing token: %s", exc)
        raise HTTPException(
            status_code=401, detail="Authentication failed. Please re-authorize."
        ) from exc
    except ApiRequestError as exc:
        logger.error("Error fetching profile: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to fetch profile data.") from exc
