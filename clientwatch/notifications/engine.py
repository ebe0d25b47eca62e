"""
Notification engine - turns scanner output into per-project reminder threads.

Flow per run:
1. Drop items reminded about within the cooldown window (history lookup)
2. Group the rest by project, in first-seen order
3. Per project: comment on the open reminder thread, or create one
4. Record history for a group only after its post succeeded

A failed group is logged and left unrecorded so the next run retries it.
"""

from __future__ import annotations

import html
import sqlite3
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from clientwatch.basecamp.gateway import BasecampGateway
from clientwatch.config import (
    COOLDOWN_DAYS,
    NOTIFICATION_MARKER,
    NOTIFICATION_SUBJECT,
    STALENESS_DAYS,
    Settings,
)
from clientwatch.exceptions import ClientWatchError, NotificationPostError
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import counter, log_event
from clientwatch.storage.history_repository import NotificationHistoryRepository
from clientwatch.storage.models import ContentItem, NotificationRecord, utc_now

logger = get_logger(__name__)


def should_notify(
    item: ContentItem,
    history: Mapping[tuple[int, str], NotificationRecord],
    now: datetime,
    cooldown: timedelta,
) -> bool:
    """True iff the item was never notified, or last notified at least `cooldown` ago."""
    record = history.get(item.key)
    if record is None:
        return True
    return now - record.notified_at >= cooldown


def group_by_project(items: Iterable[ContentItem]) -> dict[int, list[ContentItem]]:
    """Group items by project_id keeping first-seen order of projects and items."""
    groups: dict[int, list[ContentItem]] = {}
    for item in items:
        groups.setdefault(item.project_id, []).append(item)
    return groups


def render_notification_body(items: list[ContentItem], staleness_days: int) -> str:
    """Rich-text comment body listing every pending item with a link."""
    lines = []
    for index, item in enumerate(items, start=1):
        link = html.escape(item.app_url or item.url or "", quote=True)
        lines.append(
            f"{index}. <strong>[{item.item_type.value}]</strong> "
            f'{html.escape(item.subject)} <a href="{link}">Read</a>'
        )
    header = f"🚨 Unread client messages/comments older than {staleness_days} days:<br/>"
    return header + " <br/>".join(lines)


def find_notification_thread(
    messages: Iterable[dict[str, Any]], marker: str = NOTIFICATION_MARKER
) -> dict[str, Any] | None:
    """The active board message whose title carries the reminder marker, if any."""
    for message in messages:
        title = message.get("title") or message.get("subject") or ""
        if marker in title and message.get("status") == "active":
            return message
    return None


@dataclass
class NotificationSummary:
    """Outcome counts of one engine run."""

    candidates: int = 0
    eligible: int = 0
    suppressed: int = 0
    groups_posted: int = 0
    groups_failed: int = 0
    threads_created: int = 0
    threads_updated: int = 0


class NotificationEngine:
    """Cooldown-aware, history-backed reminder poster."""

    def __init__(
        self,
        gateway: BasecampGateway,
        history_repo: NotificationHistoryRepository,
        cooldown_window: timedelta = timedelta(days=COOLDOWN_DAYS),
        staleness_window: timedelta = timedelta(days=STALENESS_DAYS),
        clock: Callable[[], datetime] = utc_now,
    ):
        self._gateway = gateway
        self._history = history_repo
        self.cooldown_window = cooldown_window
        self.staleness_window = staleness_window
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: BasecampGateway,
        history_repo: NotificationHistoryRepository,
    ) -> NotificationEngine:
        return cls(
            gateway=gateway,
            history_repo=history_repo,
            cooldown_window=settings.cooldown_window,
            staleness_window=settings.staleness_window,
        )

    def run(self, items: list[ContentItem]) -> NotificationSummary:
        """
        Notify about every eligible item, one aggregate post per project

        Raises:
            sqlite3.Error: If the notification history cannot be read

        Side Effects:
            - Reads the full notification history
            - POSTs comments (and possibly messages) to Basecamp
            - Upserts history rows for every group that posted successfully
        """
        summary = NotificationSummary(candidates=len(items))
        if not items:
            logger.info("No unread client items found")
            return summary

        now = self._clock()
        history = self._history.load_all()

        eligible: list[ContentItem] = []
        seen: set[tuple[int, str]] = set()
        for item in items:
            if item.key in seen:
                continue
            seen.add(item.key)
            if should_notify(item, history, now, self.cooldown_window):
                eligible.append(item)
            else:
                summary.suppressed += 1
        summary.eligible = len(eligible)

        if not eligible:
            logger.info("No new items to notify about after filtering recently notified items")
            return summary

        logger.info("Notifying about %d unread messages/comments", len(eligible))

        for project_id, group in group_by_project(eligible).items():
            try:
                created = self.post_project_notification(project_id, group)
            except NotificationPostError as exc:
                summary.groups_failed += 1
                counter("notify.group_failures")
                logger.error("Error posting notification for project %s: %s", project_id, exc)
                continue

            summary.groups_posted += 1
            if created:
                summary.threads_created += 1
            else:
                summary.threads_updated += 1

            try:
                self._history.record_many(group, notified_at=now)
            except sqlite3.Error as exc:
                logger.error(
                    "Notification posted for project %s but history write failed: %s",
                    project_id,
                    exc,
                )
                counter("notify.history_failures")

        log_event(
            "notify.completed",
            eligible=summary.eligible,
            suppressed=summary.suppressed,
            posted=summary.groups_posted,
            failed=summary.groups_failed,
        )
        return summary

    def post_project_notification(self, project_id: int, items: list[ContentItem]) -> bool:
        """
        Post one reminder for a project's items

        Returns:
            True if a new reminder thread was created, False if an existing one was updated

        Raises:
            NotificationPostError: If the board is unknown or any Basecamp call fails
        """
        board_id = next(
            (item.message_board_id for item in items if item.message_board_id is not None),
            None,
        )
        if board_id is None:
            raise NotificationPostError(
                f"Project {project_id} has no message board", project_id=project_id
            )

        body = render_notification_body(items, self.staleness_window.days)
        board_path = f"buckets/{project_id}/message_boards/{board_id}/messages.json"

        try:
            existing = find_notification_thread(self._gateway.get_all(board_path))

            if existing is not None:
                logger.info("Updating existing notification for project %s", project_id)
                self._post_comment(project_id, existing["id"], body)
                created = False
            else:
                logger.info("Posting new notification for project %s", project_id)
                message = self._gateway.post(
                    board_path,
                    {"subject": NOTIFICATION_SUBJECT, "status": "active", "content": ""},
                )
                if not isinstance(message, dict) or "id" not in message:
                    raise NotificationPostError(
                        f"Creating the reminder thread for project {project_id} returned no id",
                        project_id=project_id,
                    )
                self._post_comment(project_id, message["id"], body)
                created = True
        except NotificationPostError:
            raise
        except ClientWatchError as exc:
            raise NotificationPostError(
                f"Basecamp call failed for project {project_id}: {exc}", project_id=project_id
            ) from exc

        counter("notify.items_posted", len(items))
        log_event("notify.posted", project_id=project_id, items=len(items), created=created)
        return created

    def _post_comment(self, project_id: int, recording_id: int, body: str) -> None:
        self._gateway.post(
            f"buckets/{project_id}/recordings/{recording_id}/comments.json",
            {"content": body},
        )
