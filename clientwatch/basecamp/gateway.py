"""Basecamp 3 REST API gateway

Thin HTTP facade used by the scanner, the notification engine and the web
glue. Every call carries the current bearer token and a timeout.

Policy:
- 401 -> one credential refresh (single flight) -> exactly one retry;
  a second 401 raises UnauthorizedError and is never refreshed again
- GETs retry 429/5xx/transport failures with backoff; POSTs are not retried
- Every other failure is an ApiRequestError tagged with the HTTP status;
  requests exceptions never escape this module
"""

from __future__ import annotations

from typing import Any

import requests

from clientwatch.basecamp.oauth import CredentialManager
from clientwatch.config import (
    HTTP_MAX_ATTEMPTS,
    HTTP_RETRY_BASE_DELAY,
    HTTP_TIMEOUT_SECONDS,
    USER_AGENT,
    Settings,
)
from clientwatch.exceptions import ApiRequestError, UnauthorizedError
from clientwatch.infrastructure.retry import RetryPolicy
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import counter, time_block

logger = get_logger(__name__)


class BasecampGateway:
    """Bearer-authenticated GET/POST against one Basecamp account."""

    def __init__(
        self,
        credentials: CredentialManager,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        user_agent: str = USER_AGENT,
        retry_policy: RetryPolicy | None = None,
    ):
        self._credentials = credentials
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._user_agent = user_agent
        self._retry = retry_policy or RetryPolicy(
            stage="basecamp.get",
            max_attempts=HTTP_MAX_ATTEMPTS,
            base_delay=HTTP_RETRY_BASE_DELAY,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credentials: CredentialManager,
        session: requests.Session | None = None,
    ) -> BasecampGateway:
        return cls(
            credentials=credentials,
            base_url=settings.api_base_url,
            session=session,
            timeout=settings.http_timeout,
            user_agent=settings.user_agent,
            retry_policy=RetryPolicy(
                stage="basecamp.get",
                max_attempts=settings.http_max_attempts,
                base_delay=HTTP_RETRY_BASE_DELAY,
            ),
        )

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET one resource and return its decoded JSON body."""
        response = self._retry.execute(self._request, "GET", path, params=params)
        return self._decode(response)

    def get_all(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """
        GET a collection, following Link rel="next" pagination to the end

        Raises:
            ApiRequestError: If any page fails or is not a JSON array
        """
        items: list[Any] = []
        url: str | None = path
        page_params = params

        while url:
            response = self._retry.execute(self._request, "GET", url, params=page_params)
            page = self._decode(response)
            if page is None:
                page = []
            if not isinstance(page, list):
                raise ApiRequestError(
                    f"Expected a JSON array from {url}", status_code=response.status_code
                )
            items.extend(page)
            url = response.links.get("next", {}).get("url")
            # next links already carry the query string
            page_params = None

        return items

    def post(self, path: str, payload: dict[str, Any]) -> Any:
        """POST a JSON payload and return the decoded response (None if empty)."""
        return self._decode(self._request("POST", path, json=payload))

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        credential = self._credentials.get_current_credential()
        response = self._send(method, path, credential.access_token, **kwargs)

        if response.status_code == 401:
            counter("basecamp.unauthorized")
            logger.info("%s %s rejected as unauthorized, refreshing token", method, path)
            refreshed = self._credentials.refresh_if_current(credential.access_token)
            response = self._send(method, path, refreshed.access_token, **kwargs)
            if response.status_code == 401:
                logger.error("%s %s still unauthorized after token refresh", method, path)
                raise UnauthorizedError(f"{method} {path} unauthorized after token refresh")

        if not response.ok:
            counter("basecamp.http_errors")
            raise ApiRequestError(
                f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _send(self, method: str, path: str, token: str, **kwargs: Any) -> requests.Response:
        url = self._url(path)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        try:
            with time_block("basecamp.request.latency"):
                return self._session.request(
                    method, url, headers=headers, timeout=self._timeout, **kwargs
                )
        except requests.Timeout as exc:
            counter("basecamp.timeouts")
            raise ApiRequestError(f"{method} {url} timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise ApiRequestError(f"{method} {url} failed: {exc}") from exc

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path.lstrip('/')}"

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiRequestError(
                "Response body is not valid JSON", status_code=response.status_code
            ) from exc
