from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from clientwatch.storage.models import (
    ContentItem,
    Credential,
    ItemType,
    NotificationRecord,
    parse_stored_timestamp,
    parse_timestamp,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2025-03-01T09:00:00.000Z", datetime(2025, 3, 1, 9, 0, tzinfo=UTC)),
        ("2025-03-01T20:00:00+11:00", datetime(2025, 3, 1, 9, 0, tzinfo=UTC)),
        ("2025-03-01 09:00:00", datetime(2025, 3, 1, 9, 0, tzinfo=UTC)),
    ],
)
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected
    assert parse_timestamp(raw).tzinfo == UTC


def test_parse_timestamp_converts_aware_datetimes():
    sydney = timezone(timedelta(hours=11))

    assert parse_timestamp(datetime(2025, 3, 1, 20, 0, tzinfo=sydney)) == datetime(
        2025, 3, 1, 9, 0, tzinfo=UTC
    )


def test_credential_requires_access_token():
    with pytest.raises(ValidationError):
        Credential(access_token="", refresh_token="refresh-1")


def test_credential_repr_hides_tokens():
    credential = Credential(access_token="secret-access", refresh_token="secret-refresh")

    assert "secret" not in repr(credential)


def test_credential_age():
    updated = datetime(2025, 3, 1, tzinfo=UTC)
    credential = Credential(access_token="a", refresh_token="r", updated_at=updated)

    assert credential.age(updated + timedelta(days=8)) == timedelta(days=8)


def test_item_key_includes_type():
    message = ContentItem(
        item_id=5,
        item_type=ItemType.MESSAGE,
        project_id=1,
        created_at="2025-03-01T09:00:00Z",
    )
    comment = message.model_copy(update={"item_type": ItemType.COMMENT})

    assert message.key == (5, "Message")
    assert comment.key == (5, "Comment")


def test_record_from_db_row():
    record = NotificationRecord.from_db_row(
        {
            "item_id": 5,
            "item_type": "Comment",
            "project_id": 1,
            "notified_at": "2025-03-01T09:00:00+00:00",
        }
    )

    assert record.item_type is ItemType.COMMENT
    assert record.key == (5, "Comment")
    assert record.notified_at == datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


def test_stored_timestamps_written_by_this_package_stay_utc():
    assert parse_stored_timestamp("2025-03-01T09:00:00+00:00") == datetime(
        2025, 3, 1, 9, 0, tzinfo=UTC
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        # AEDT, UTC+11
        ("2025-01-15 09:00:00", datetime(2025, 1, 14, 22, 0, tzinfo=UTC)),
        # AEST, UTC+10
        ("2025-07-15 09:00:00", datetime(2025, 7, 14, 23, 0, tzinfo=UTC)),
    ],
)
def test_naive_stored_timestamps_are_legacy_local_time(raw, expected):
    assert parse_stored_timestamp(raw) == expected


def test_record_reads_legacy_local_time():
    record = NotificationRecord(
        item_id=5, item_type=ItemType.MESSAGE, project_id=1, notified_at="2025-01-15 09:00:00"
    )

    assert record.notified_at == datetime(2025, 1, 14, 22, 0, tzinfo=UTC)
