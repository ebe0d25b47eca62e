"""
Notification history repository - when each client item was last reminded about.

Records are unique per (item_id, item_type) and are never deleted here;
re-notification overwrites notified_at in place.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from clientwatch.infrastructure.database import retry_on_db_lock
from clientwatch.observability.logging import get_logger
from clientwatch.storage import BaseRepository
from clientwatch.storage.models import ContentItem, NotificationRecord, utc_now

logger = get_logger(__name__)

_UPSERT_SQL = """
    INSERT INTO notification_history (item_id, item_type, project_id, notified_at)
    VALUES (?, ?, ?, ?)
    ON CONFLICT(item_id, item_type) DO UPDATE SET
        notified_at = excluded.notified_at
"""


class NotificationHistoryRepository(BaseRepository):
    """Repository for NotificationRecord rows."""

    def load_all(self) -> dict[tuple[int, str], NotificationRecord]:
        """
        Load the full history keyed by (item_id, item_type)

        Returns:
            Mapping of item key to its NotificationRecord
        """
        rows = self.fetch_all(
            "SELECT item_id, item_type, project_id, notified_at FROM notification_history"
        )
        records = (NotificationRecord.from_db_row(row) for row in rows)
        return {record.key: record for record in records}

    @retry_on_db_lock()
    def record_many(self, items: Iterable[ContentItem], notified_at: datetime | None = None) -> int:
        """
        Upsert history for a group of items in one transaction

        Returns:
            Number of items recorded

        Side Effects:
            - Upserts one row per item in notification_history (project_id kept
              from the first insert)
            - Commits once; rolls back the whole group on error
        """
        when = (notified_at or utc_now()).isoformat()
        written = self.write_many(
            _UPSERT_SQL,
            ((item.item_id, item.item_type.value, item.project_id, when) for item in items),
        )
        logger.debug("Recorded %d notification history rows", written)
        return written
