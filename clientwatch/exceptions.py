"""Error taxonomy for ClientWatch.

Remote-call failures are converted to the narrowest of these at the boundary
of the component that issued the call; raw ``requests`` exceptions never leave
the API gateway.
"""

from __future__ import annotations


class ClientWatchError(Exception):
    """Base class for all ClientWatch errors"""


class MissingCredentialsError(ClientWatchError):
    """Raised when no credential has been stored yet (authorization never completed)"""


class AuthExchangeError(ClientWatchError):
    """Raised when the one-time authorization code exchange fails"""


class AuthRefreshError(ClientWatchError):
    """Raised when a token refresh fails; the previous credential stays in place"""


class CredentialEncryptionError(ClientWatchError):
    """Raised when credential encryption/decryption fails"""


class ApiRequestError(ClientWatchError):
    """A Basecamp API call failed, tagged with the HTTP status when there was one"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(ApiRequestError):
    """Raised when a call is still rejected after one refresh-and-retry"""

    def __init__(self, message: str):
        super().__init__(message, status_code=401)


class TransientFetchError(ClientWatchError):
    """A read failed during a scan; the caller treats it as an empty result"""


class NotificationPostError(ClientWatchError):
    """Posting a project's reminder failed; its items stay unrecorded"""

    def __init__(self, message: str, project_id: int | None = None):
        super().__init__(message)
        self.project_id = project_id
