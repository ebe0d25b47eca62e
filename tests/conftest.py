"""
Pytest configuration for ClientWatch tests

Provides an isolated SQLite database per test, a Fernet key, and factories
for Basecamp payloads and HTTP responses.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import requests
from cryptography.fernet import Fernet

from clientwatch.infrastructure.database import init_database, reset_pools
from clientwatch.observability.telemetry import reset_telemetry

NOW = datetime(2025, 3, 20, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time used by clocks injected into components"""
    return NOW


@pytest.fixture(autouse=True)
def clean_telemetry():
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def encryption_key(monkeypatch):
    """Generate test encryption key"""
    key = Fernet.generate_key().decode()
    monkeypatch.setenv("CLIENTWATCH_ENCRYPTION_KEY", key)
    return key


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """Point the pool at a fresh database file with the schema applied"""
    db_path = tmp_path / "clientwatch_test.db"
    monkeypatch.setenv("CLIENTWATCH_DB_PATH", str(db_path))
    reset_pools()
    init_database()
    yield db_path
    reset_pools()


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@pytest.fixture
def make_response():
    """Factory for real requests.Response objects"""

    def _make(
        status_code: int = 200,
        payload: Any = None,
        next_url: str | None = None,
    ) -> requests.Response:
        response = requests.Response()
        response.status_code = status_code
        response._content = b"" if payload is None else json.dumps(payload).encode()
        response.headers["Content-Type"] = "application/json"
        if next_url:
            response.headers["Link"] = f'<{next_url}>; rel="next"'
        return response

    return _make


@pytest.fixture
def make_project():
    """Factory for projects.json entries"""

    def _make(
        project_id: int,
        name: str = "K6001_EXTERNAL Acme",
        created_days_ago: float = 100,
        updated_days_ago: float = 2,
        board_id: int | None = None,
    ) -> dict[str, Any]:
        dock = [{"id": project_id * 10 + 1, "name": "todoset", "enabled": True}]
        if board_id is not None:
            dock.append({"id": board_id, "name": "message_board", "enabled": True})
        return {
            "id": project_id,
            "name": name,
            "created_at": _iso(NOW - timedelta(days=created_days_ago)),
            "updated_at": _iso(NOW - timedelta(days=updated_days_ago)),
            "dock": dock,
        }

    return _make


@pytest.fixture
def make_message():
    """Factory for message board messages"""

    def _make(
        message_id: int,
        days_ago: float = 8,
        client: bool = True,
        comments_count: int = 0,
        subject: str = "Question about invoice",
        title: str | None = None,
        status: str = "active",
    ) -> dict[str, Any]:
        return {
            "id": message_id,
            "status": status,
            "subject": subject,
            "title": title if title is not None else subject,
            "created_at": _iso(NOW - timedelta(days=days_ago)),
            "comments_count": comments_count,
            "url": f"https://3.basecampapi.com/1/buckets/1/messages/{message_id}.json",
            "app_url": f"https://3.basecamp.com/1/buckets/1/messages/{message_id}",
            "creator": {"id": 900 + message_id, "name": "Client", "client": client},
        }

    return _make


@pytest.fixture
def make_comment():
    """Factory for comments"""

    def _make(comment_id: int, days_ago: float = 8, client: bool = True) -> dict[str, Any]:
        return {
            "id": comment_id,
            "created_at": _iso(NOW - timedelta(days=days_ago)),
            "url": f"https://3.basecampapi.com/1/buckets/1/comments/{comment_id}.json",
            "app_url": f"https://3.basecamp.com/1/buckets/1/messages/1#__recording_{comment_id}",
            "creator": {"id": 700 + comment_id, "name": "Someone", "client": client},
        }

    return _make
