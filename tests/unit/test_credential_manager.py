"""Unit tests for the Basecamp credential manager

Tests cover:
- Authorization URL and code exchange
- Loading the stored credential
- Refresh with and without refresh-token rotation
- Failed refresh leaves the stored and in-memory credential intact
- Proactive refresh of stale credentials
- Single-flight refresh under concurrent callers
"""

from __future__ import annotations

import sqlite3
import threading
import time
from datetime import timedelta
from unittest.mock import Mock, patch
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from clientwatch.basecamp.oauth import CredentialManager
from clientwatch.exceptions import AuthExchangeError, AuthRefreshError, MissingCredentialsError
from clientwatch.observability.telemetry import counter
from clientwatch.storage.token_repository import TokenRepository


@pytest.fixture
def token_repo(test_db, encryption_key):
    return TokenRepository()


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def manager(token_repo, session, now):
    return CredentialManager(
        token_repo=token_repo,
        client_id="client-123",
        client_secret="secret-456",
        redirect_uri="http://localhost:3000/callback",
        token_max_age=timedelta(days=7),
        session=session,
        clock=lambda: now,
    )


def test_authorization_url(manager):
    url = manager.authorization_url()

    parsed = urlparse(url)
    assert parsed.netloc == "launchpad.37signals.com"
    assert parsed.path == "/authorization/new"
    assert parse_qs(parsed.query) == {
        "client_id": ["client-123"],
        "redirect_uri": ["http://localhost:3000/callback"],
        "type": ["web_server"],
    }


def test_authorize_stores_both_tokens(manager, session, token_repo, make_response, now):
    session.post.return_value = make_response(
        200, {"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 1209600}
    )

    credential = manager.authorize("one-time-code")

    assert credential.access_token == "access-1"
    assert token_repo.get_tokens().refresh_token == "refresh-1"
    assert token_repo.get_updated_at() == now
    _, kwargs = session.post.call_args
    assert kwargs["json"] == {
        "type": "web_server",
        "client_id": "client-123",
        "client_secret": "secret-456",
        "code": "one-time-code",
        "redirect_uri": "http://localhost:3000/callback",
    }
    assert counter("oauth.code_exchanged.count", 0) == 1


def test_authorize_failure_raises_and_stores_nothing(manager, session, token_repo, make_response):
    session.post.return_value = make_response(400, {"error": "invalid_grant"})

    with pytest.raises(AuthExchangeError):
        manager.authorize("bad-code")

    assert token_repo.get_tokens() is None


def test_authorize_requires_refresh_token(manager, session, token_repo, make_response):
    session.post.return_value = make_response(200, {"access_token": "access-1"})

    with pytest.raises(AuthExchangeError):
        manager.authorize("code")

    assert token_repo.get_tokens() is None


def test_authorize_rejects_empty_code(manager, session):
    with pytest.raises(AuthExchangeError):
        manager.authorize("")

    session.post.assert_not_called()


def test_load_without_stored_credential(manager):
    with pytest.raises(MissingCredentialsError):
        manager.load()


def test_refresh_keeps_refresh_token_when_not_rotated(
    manager, session, token_repo, make_response, now
):
    token_repo.save_tokens("access-old", "refresh-1", updated_at=now - timedelta(days=1))
    manager.load()
    session.post.return_value = make_response(200, {"access_token": "access-new"})

    credential = manager.refresh()

    assert credential.access_token == "access-new"
    assert credential.refresh_token == "refresh-1"
    stored = token_repo.get_tokens()
    assert stored.access_token == "access-new"
    assert stored.refresh_token == "refresh-1"
    assert stored.updated_at == now
    _, kwargs = session.post.call_args
    assert kwargs["json"] == {
        "type": "refresh",
        "client_id": "client-123",
        "client_secret": "secret-456",
        "refresh_token": "refresh-1",
    }


def test_refresh_persists_rotated_refresh_token(manager, session, token_repo, make_response, now):
    token_repo.save_tokens("access-old", "refresh-1", updated_at=now - timedelta(days=1))
    manager.load()
    session.post.return_value = make_response(
        200, {"access_token": "access-new", "refresh_token": "refresh-2"}
    )

    manager.refresh()

    assert token_repo.get_tokens().refresh_token == "refresh-2"
    assert manager.get_current_credential().refresh_token == "refresh-2"


@pytest.mark.parametrize(
    "outcome",
    [
        requests.ConnectionError("connection reset"),
        requests.Timeout("read timed out"),
    ],
)
def test_refresh_transport_failure_keeps_previous(manager, session, token_repo, now, outcome):
    token_repo.save_tokens("access-old", "refresh-1", updated_at=now - timedelta(days=1))
    manager.load()
    session.post.side_effect = outcome

    with pytest.raises(AuthRefreshError):
        manager.refresh()

    assert manager.get_current_credential().access_token == "access-old"
    assert token_repo.get_tokens().access_token == "access-old"


def test_refresh_rejected_keeps_previous(manager, session, token_repo, make_response, now):
    token_repo.save_tokens("access-old", "refresh-1", updated_at=now - timedelta(days=1))
    manager.load()
    session.post.return_value = make_response(401, {"error": "invalid_token"})

    with pytest.raises(AuthRefreshError):
        manager.refresh()

    assert token_repo.get_tokens().access_token == "access-old"


def test_refresh_persist_failure_keeps_memory_unchanged(
    manager, session, token_repo, make_response, now
):
    token_repo.save_tokens("access-old", "refresh-1", updated_at=now - timedelta(days=1))
    manager.load()
    session.post.return_value = make_response(200, {"access_token": "access-new"})

    with patch.object(
        token_repo, "save_tokens", side_effect=sqlite3.OperationalError("disk I/O")
    ):
        with pytest.raises(AuthRefreshError):
            manager.refresh()

    assert manager.get_current_credential().access_token == "access-old"


def test_refresh_without_any_stored_credential(manager, session):
    with pytest.raises(AuthRefreshError):
        manager.refresh()

    session.post.assert_not_called()


def test_fresh_credential_is_not_refreshed(manager, session, token_repo, now):
    token_repo.save_tokens("access-1", "refresh-1", updated_at=now - timedelta(days=6))

    credential = manager.get_current_credential()

    assert credential.access_token == "access-1"
    session.post.assert_not_called()


def test_stale_credential_refreshed_before_use(manager, session, token_repo, make_response, now):
    token_repo.save_tokens("access-1", "refresh-1", updated_at=now - timedelta(days=8))
    session.post.return_value = make_response(200, {"access_token": "access-2"})

    credential = manager.get_current_credential()

    assert credential.access_token == "access-2"
    assert token_repo.get_updated_at() == now
    session.post.assert_called_once()


def test_failed_proactive_refresh_keeps_old_token(manager, session, token_repo, now):
    token_repo.save_tokens("access-1", "refresh-1", updated_at=now - timedelta(days=8))
    session.post.side_effect = requests.ConnectionError("down")

    assert manager.get_current_credential().access_token == "access-1"
    assert manager.get_current_credential().access_token == "access-1"

    # not retried on every call after a failure
    session.post.assert_called_once()
    assert counter("oauth.proactive_refresh_failed", 0) == 1


def test_refresh_if_current_coalesces_when_already_replaced(
    manager, session, token_repo, make_response, now
):
    token_repo.save_tokens("access-1", "refresh-1", updated_at=now)
    manager.load()
    session.post.return_value = make_response(200, {"access_token": "access-2"})
    manager.refresh()

    credential = manager.refresh_if_current("access-1")

    assert credential.access_token == "access-2"
    session.post.assert_called_once()
    assert counter("oauth.refresh_coalesced", 0) == 1


def test_concurrent_unauthorized_callers_share_one_refresh(
    manager, session, token_repo, make_response, now
):
    token_repo.save_tokens("access-1", "refresh-1", updated_at=now)
    manager.load()

    def slow_post(*args, **kwargs):
        time.sleep(0.05)
        return make_response(200, {"access_token": "access-2"})

    session.post.side_effect = slow_post
    results: list[str] = []
    results_lock = threading.Lock()

    def caller():
        credential = manager.refresh_if_current("access-1")
        with results_lock:
            results.append(credential.access_token)

    threads = [threading.Thread(target=caller) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ["access-2"] * 5
    assert session.post.call_count == 1
