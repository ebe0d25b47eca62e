"""Basecamp (37signals Launchpad) OAuth2 credential manager

Handles the credential lifecycle for the Basecamp API:
- Build the authorization URL for the web-server flow
- Exchange the one-time authorization code for tokens
- Refresh the access token when it is stale or rejected
- Persist every change through TokenRepository

CONCURRENCY:
- Refreshes are serialized with a lock; callers that saw the same rejected
  token collapse into one refresh and reuse its result
- A failed refresh never discards the working credential
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import requests

from clientwatch.config import (
    HTTP_TIMEOUT_SECONDS,
    LAUNCHPAD_AUTHORIZE_URL,
    LAUNCHPAD_TOKEN_URL,
    TOKEN_MAX_AGE_DAYS,
    Settings,
)
from clientwatch.exceptions import (
    AuthExchangeError,
    AuthRefreshError,
    ClientWatchError,
    CredentialEncryptionError,
    MissingCredentialsError,
)
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import counter, log_event
from clientwatch.storage.models import Credential, utc_now
from clientwatch.storage.token_repository import TokenRepository

logger = get_logger(__name__)


class CredentialManager:
    """
    Owner of the single live Basecamp credential

    One instance is constructed per process and handed to the API gateway;
    there is no module-level token state.
    """

    def __init__(
        self,
        token_repo: TokenRepository,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_max_age: timedelta = timedelta(days=TOKEN_MAX_AGE_DAYS),
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        token_url: str = LAUNCHPAD_TOKEN_URL,
    ):
        """
        Initialize credential manager

        Args:
            token_repo: Durable store for the credential record
            client_id: Launchpad OAuth client id
            client_secret: Launchpad OAuth client secret
            redirect_uri: Redirect URI registered with the OAuth client
            token_max_age: Refresh proactively once the credential is older than this
            session: HTTP session for the token endpoint (created if None)
            timeout: Token endpoint timeout in seconds
            clock: Source of "now" (UTC)
            token_url: Token endpoint URL
        """
        self.token_repo = token_repo
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_max_age = token_max_age
        self.token_url = token_url
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._credential: Credential | None = None
        self._proactive_refresh_failed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        token_repo: TokenRepository,
        session: requests.Session | None = None,
    ) -> CredentialManager:
        return cls(
            token_repo=token_repo,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            token_max_age=settings.token_max_age,
            session=session,
            timeout=settings.http_timeout,
        )

    def authorization_url(self) -> str:
        """URL that starts the web-server authorization flow."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "type": "web_server",
            }
        )
        return f"{LAUNCHPAD_AUTHORIZE_URL}?{query}"

    def load(self) -> Credential:
        """
        Load the stored credential into memory

        Raises:
            MissingCredentialsError: If authorization has never completed
            CredentialEncryptionError: If the stored record cannot be decrypted
        """
        with self._lock:
            credential = self.token_repo.get_tokens()
            if credential is None:
                raise MissingCredentialsError(
                    "No stored Basecamp credential. Complete authorization first."
                )
            self._credential = credential
            logger.info(
                "Loaded Basecamp credential (updated_at=%s)", credential.updated_at.isoformat()
            )
            return credential

    def get_current_credential(self) -> Credential:
        """
        Return the live credential, refreshing it first if it is stale

        A failed proactive refresh is logged and the previous credential is
        returned; the gateway's reactive refresh still applies if Basecamp
        rejects it. The proactive attempt is not repeated after a failure.

        Raises:
            MissingCredentialsError: If no credential is stored
        """
        credential = self._credential or self.load()

        if (
            not self._proactive_refresh_failed
            and credential.age(self._clock()) > self.token_max_age
        ):
            logger.info(
                "Credential older than %s, refreshing before use", self.token_max_age
            )
            try:
                credential = self.refresh_if_current(credential.access_token)
            except AuthRefreshError as exc:
                self._proactive_refresh_failed = True
                logger.warning("Proactive token refresh failed, keeping old token: %s", exc)
                counter("oauth.proactive_refresh_failed")

        return self._credential or credential

    def refresh(self) -> Credential:
        """
        Exchange the refresh token for a new access token

        Returns:
            The new Credential

        Raises:
            AuthRefreshError: If the exchange or the write-back fails

        Side Effects:
            - POSTs to the Launchpad token endpoint
            - Upserts the tokens row (new refresh token if issued, else the old one)
            - Replaces the in-memory credential only after the write succeeded
        """
        with self._lock:
            return self._refresh_locked()

    def refresh_if_current(self, rejected_token: str) -> Credential:
        """
        Single-flight refresh for callers holding a token that failed

        If another caller already replaced rejected_token while this one waited
        for the lock, the replacement is returned without a second refresh.

        Raises:
            AuthRefreshError: If a refresh was needed and failed
        """
        with self._lock:
            current = self._credential
            if current is not None and current.access_token != rejected_token:
                counter("oauth.refresh_coalesced")
                logger.debug("Token already refreshed by another caller")
                return current
            return self._refresh_locked()

    def _refresh_locked(self) -> Credential:
        previous = self._credential
        if previous is None:
            try:
                previous = self.token_repo.get_tokens()
            except CredentialEncryptionError as exc:
                raise AuthRefreshError(f"Stored credential unreadable: {exc}") from exc
        if previous is None:
            raise AuthRefreshError("No stored credential to refresh")
        if not previous.refresh_token:
            raise AuthRefreshError("No refresh token available")

        data = self._post_token(
            {
                "type": "refresh",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": previous.refresh_token,
            },
            AuthRefreshError,
        )

        access_token = data.get("access_token")
        if not access_token:
            raise AuthRefreshError("Token endpoint response had no access_token")

        # Launchpad may or may not rotate the refresh token.
        refresh_token = data.get("refresh_token") or previous.refresh_token
        rotated = refresh_token != previous.refresh_token

        try:
            credential = self.token_repo.save_tokens(
                access_token, refresh_token, updated_at=self._clock()
            )
        except (ClientWatchError, sqlite3.Error) as exc:
            logger.error("Refreshed token could not be persisted: %s", exc)
            raise AuthRefreshError(f"Failed to persist refreshed token: {exc}") from exc

        self._credential = credential
        self._proactive_refresh_failed = False

        logger.info("Refreshed Basecamp access token (refresh token rotated: %s)", rotated)
        counter("oauth.token_refreshed.count")
        log_event("oauth.token_refreshed", refresh_token_rotated=rotated)
        return credential

    def authorize(self, code: str) -> Credential:
        """
        Exchange a one-time authorization code for the initial credential pair

        Raises:
            AuthExchangeError: If the exchange fails or the response is incomplete

        Side Effects:
            - POSTs to the Launchpad token endpoint
            - Writes both tokens as the singleton tokens row
        """
        if not code:
            raise AuthExchangeError("Authorization code is empty")

        with self._lock:
            data = self._post_token(
                {
                    "type": "web_server",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                },
                AuthExchangeError,
            )

            access_token = data.get("access_token")
            refresh_token = data.get("refresh_token")
            if not access_token or not refresh_token:
                raise AuthExchangeError("Token endpoint response missing access or refresh token")

            try:
                credential = self.token_repo.save_tokens(
                    access_token, refresh_token, updated_at=self._clock()
                )
            except (ClientWatchError, sqlite3.Error) as exc:
                raise AuthExchangeError(f"Failed to persist tokens: {exc}") from exc

            self._credential = credential
            self._proactive_refresh_failed = False

        logger.info("Exchanged authorization code for Basecamp tokens")
        counter("oauth.code_exchanged.count")
        log_event("oauth.code_exchanged")
        return credential

    def _post_token(
        self,
        payload: dict[str, str],
        error_cls: type[AuthExchangeError] | type[AuthRefreshError],
    ) -> dict[str, Any]:
        try:
            response = self._session.post(self.token_url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.error("Token endpoint request failed: %s", exc)
            raise error_cls(f"Token endpoint unreachable: {exc}") from exc

        if not response.ok:
            logger.error("Token endpoint returned HTTP %s", response.status_code)
            raise error_cls(f"Token endpoint returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise error_cls("Token endpoint returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise error_cls("Token endpoint returned an unexpected payload")
        return data
