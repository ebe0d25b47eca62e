"""Centralized configuration for ClientWatch.

Typed constants for Basecamp endpoints, scan policy, HTTP and database
settings. Environment variable overrides use safe defaults so the modules
import without extra env configuration; required OAuth settings are only
checked when load_settings() builds the Settings object handed to the
runner and the web app.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Paths ---
PACKAGE_ROOT = Path(__file__).parent
DEFAULT_DB_PATH = PACKAGE_ROOT / "data" / "clientwatch.db"

# --- Basecamp / Launchpad ---
LAUNCHPAD_AUTHORIZE_URL: str = "https://launchpad.37signals.com/authorization/new"
LAUNCHPAD_TOKEN_URL: str = "https://launchpad.37signals.com/authorization/token"
BASECAMP_API_ROOT: str = "https://3.basecampapi.com"
USER_AGENT: str = os.getenv(
    "CLIENTWATCH_USER_AGENT", "ClientWatch (ops@example.com)"
)

# --- Scan policy ---
PROJECT_PATTERN: str = os.getenv("CLIENTWATCH_PROJECT_PATTERN", r"^K6\d{3}_EXTERNAL.*")
STALENESS_DAYS: int = int(os.getenv("CLIENTWATCH_STALENESS_DAYS", "7"))
COOLDOWN_DAYS: int = int(os.getenv("CLIENTWATCH_COOLDOWN_DAYS", "7"))
TOKEN_MAX_AGE_DAYS: int = int(os.getenv("CLIENTWATCH_TOKEN_MAX_AGE_DAYS", "7"))
PROJECT_MAX_LIFETIME_DAYS: int = int(os.getenv("CLIENTWATCH_PROJECT_MAX_LIFETIME_DAYS", "1825"))
PROJECT_MAX_IDLE_DAYS: int = int(os.getenv("CLIENTWATCH_PROJECT_MAX_IDLE_DAYS", "365"))
SCAN_WORKERS: int = int(os.getenv("CLIENTWATCH_SCAN_WORKERS", "4"))

# --- Stored timestamps ---
# Naive "YYYY-MM-DD HH:MM:SS" rows from the previous job are local time in this zone
LEGACY_TIMEZONE: str = os.getenv("CLIENTWATCH_LEGACY_TIMEZONE", "Australia/Sydney")

# --- Notification thread ---
NOTIFICATION_MARKER: str = "Unread Client Messages & Comments Notification"
NOTIFICATION_SUBJECT: str = f"📢 {NOTIFICATION_MARKER}"

# --- HTTP ---
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("CLIENTWATCH_HTTP_TIMEOUT", "30.0"))
HTTP_MAX_ATTEMPTS: int = int(os.getenv("CLIENTWATCH_HTTP_MAX_ATTEMPTS", "3"))
HTTP_RETRY_BASE_DELAY: float = float(os.getenv("CLIENTWATCH_HTTP_RETRY_BASE_DELAY", "0.5"))

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("CLIENTWATCH_DB_POOL_SIZE", "3"))
DB_POOL_TIMEOUT: float = float(os.getenv("CLIENTWATCH_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("CLIENTWATCH_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(os.getenv("CLIENTWATCH_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("CLIENTWATCH_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("CLIENTWATCH_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("CLIENTWATCH_DB_RETRY_JITTER", "0.1"))

# --- API (authorization glue) ---
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))


@dataclass(frozen=True)
class Settings:
    """Process configuration injected into the credential manager, scanner and engine."""

    client_id: str
    client_secret: str
    redirect_uri: str
    account_id: str
    project_pattern: str = PROJECT_PATTERN
    staleness_window: timedelta = timedelta(days=STALENESS_DAYS)
    cooldown_window: timedelta = timedelta(days=COOLDOWN_DAYS)
    token_max_age: timedelta = timedelta(days=TOKEN_MAX_AGE_DAYS)
    project_max_lifetime: timedelta = timedelta(days=PROJECT_MAX_LIFETIME_DAYS)
    project_max_idle: timedelta = timedelta(days=PROJECT_MAX_IDLE_DAYS)
    scan_workers: int = SCAN_WORKERS
    http_timeout: float = HTTP_TIMEOUT_SECONDS
    http_max_attempts: int = HTTP_MAX_ATTEMPTS
    user_agent: str = USER_AGENT

    @property
    def api_base_url(self) -> str:
        return f"{BASECAMP_API_ROOT}/{self.account_id}/"


_REQUIRED_ENV = {
    "client_id": "CLIENTWATCH_CLIENT_ID",
    "client_secret": "CLIENTWATCH_CLIENT_SECRET",
    "redirect_uri": "CLIENTWATCH_REDIRECT_URI",
    "account_id": "CLIENTWATCH_ACCOUNT_ID",
}


def load_settings() -> Settings:
    """
    Build Settings from the environment

    Returns:
        Settings with the OAuth client, account and policy values

    Raises:
        ValueError: If any required variable is missing
    """
    values = {field: os.getenv(env_name, "") for field, env_name in _REQUIRED_ENV.items()}
    missing = [_REQUIRED_ENV[field] for field, value in values.items() if not value]
    if missing:
        raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

    return Settings(**values)
