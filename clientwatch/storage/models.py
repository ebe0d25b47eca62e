"""
Domain models (Pydantic v2) for ClientWatch.

Credential and NotificationRecord are persisted; Project and ContentItem
live only for the duration of one scan.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clientwatch.config import LEGACY_TIMEZONE


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime, naive_tz: tzinfo = UTC) -> datetime:
    """
    Parse a Basecamp or database timestamp into an aware UTC datetime.

    Accepts ISO-8601 with or without offset ("2024-03-01T10:00:00.000Z") and
    the "YYYY-MM-DD HH:MM:SS" format; naive values are read in naive_tz.
    """
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=naive_tz)
    return parsed.astimezone(UTC)


def parse_stored_timestamp(value: str | datetime) -> datetime:
    """
    Parse a timestamp read back from the database.

    Rows written by this package are ISO-8601 UTC. Naive rows come from the
    previous job, which wrote local time in LEGACY_TIMEZONE.
    """
    return parse_timestamp(value, naive_tz=ZoneInfo(LEGACY_TIMEZONE))


class ItemType(str, Enum):
    """Kind of client content a reminder can point at."""

    MESSAGE = "Message"
    COMMENT = "Comment"


class Credential(BaseModel):
    """The single live OAuth credential pair."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("access_token")
    @classmethod
    def access_token_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("access_token cannot be empty")
        return v

    @field_validator("updated_at", mode="before")
    @classmethod
    def _coerce_updated_at(cls, v: Any) -> datetime:
        return parse_stored_timestamp(v)

    def age(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since the credential was last written."""
        return (now or utc_now()) - self.updated_at

    def __repr__(self) -> str:
        return f"Credential(updated_at={self.updated_at.isoformat()})"


class Project(BaseModel):
    """A client project eligible for scanning."""

    model_config = ConfigDict(frozen=True)

    project_id: int
    name: str = ""
    message_board_id: int | None = None


class ContentItem(BaseModel):
    """A client message or comment that is a candidate for a reminder."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    item_type: ItemType
    project_id: int
    message_board_id: int | None = None
    subject: str = ""
    url: str | None = None
    app_url: str | None = None
    created_at: datetime
    comments_count: int | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: Any) -> datetime:
        return parse_timestamp(v)

    @property
    def key(self) -> tuple[int, str]:
        return (self.item_id, self.item_type.value)


class NotificationRecord(BaseModel):
    """When a reminder was last posted for one item."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    item_type: ItemType
    project_id: int
    notified_at: datetime

    @field_validator("notified_at", mode="before")
    @classmethod
    def _coerce_notified_at(cls, v: Any) -> datetime:
        return parse_stored_timestamp(v)

    @property
    def key(self) -> tuple[int, str]:
        return (self.item_id, self.item_type.value)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> NotificationRecord:
        return cls(
            item_id=row["item_id"],
            item_type=ItemType(row["item_type"]),
            project_id=row["project_id"],
            notified_at=row["notified_at"],
        )
