"""
Content scanner - finds stale, unanswered client messages and comments.

Walks projects -> message boards -> messages -> latest comment and emits a
ContentItem for every client-authored message with no replies, and every
client-authored latest comment, older than the staleness window.

Projects are scanned in parallel; results are merged back in project order
so output is deterministic regardless of completion order. A failure inside
one project costs only that project's items.
"""

from __future__ import annotations

import concurrent.futures
import re
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from clientwatch.basecamp.gateway import BasecampGateway
from clientwatch.config import (
    PROJECT_MAX_IDLE_DAYS,
    PROJECT_MAX_LIFETIME_DAYS,
    PROJECT_PATTERN,
    SCAN_WORKERS,
    STALENESS_DAYS,
    Settings,
)
from clientwatch.exceptions import ClientWatchError, TransientFetchError
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import counter, log_event, time_block
from clientwatch.storage.models import ContentItem, ItemType, Project, parse_timestamp, utc_now

logger = get_logger(__name__)

MESSAGE_BOARD_DOCK = "message_board"


def is_client_content(content: dict[str, Any] | None) -> bool:
    """True if the recording was created by a client-flagged Basecamp user."""
    creator = (content or {}).get("creator") or {}
    return creator.get("client") is True


def is_stale_unreplied(
    content: dict[str, Any],
    now: datetime,
    staleness_window: timedelta,
    require_no_replies: bool = True,
) -> bool:
    """
    True if content is older than the staleness window (and, for messages, has no replies)

    Comments pass require_no_replies=False since they cannot be replied to.
    """
    created_at = content.get("created_at")
    if not created_at:
        return False
    if parse_timestamp(created_at) >= now - staleness_window:
        return False
    if require_no_replies:
        return content.get("comments_count") == 0
    return True


def find_message_board_id(project: dict[str, Any]) -> int | None:
    """Message board id from the project's dock, or None if it has no board."""
    for tool in project.get("dock") or []:
        if tool.get("name") == MESSAGE_BOARD_DOCK:
            return tool.get("id")
    return None


def filter_client_projects(
    raw_projects: Iterable[dict[str, Any]],
    pattern: str,
    now: datetime,
    max_lifetime: timedelta,
    max_idle: timedelta,
) -> list[Project]:
    """
    Keep client projects that are young enough and recently active

    Args:
        raw_projects: Project payloads from projects.json
        pattern: Regex the project name must match (case-insensitive)
        now: Reference time
        max_lifetime: Drop projects created longer ago than this
        max_idle: Drop projects not updated for longer than this (presumed closed)

    Returns:
        Eligible projects in the order Basecamp returned them
    """
    name_re = re.compile(pattern, re.IGNORECASE)
    projects: list[Project] = []

    for raw in raw_projects:
        name = raw.get("name") or ""
        if not name_re.match(name):
            continue
        created_at = raw.get("created_at")
        updated_at = raw.get("updated_at")
        if raw.get("id") is None or not created_at or not updated_at:
            continue
        try:
            if now - parse_timestamp(created_at) > max_lifetime:
                continue
            if now - parse_timestamp(updated_at) > max_idle:
                continue
            project = Project(
                project_id=raw["id"],
                name=name,
                message_board_id=find_message_board_id(raw),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping project %s, malformed payload: %s", raw.get("id"), exc)
            counter("scan.project_failures")
            continue

        projects.append(project)

    return projects


class ContentScanner:
    """Runs one full scan of client projects."""

    def __init__(
        self,
        gateway: BasecampGateway,
        project_pattern: str = PROJECT_PATTERN,
        staleness_window: timedelta = timedelta(days=STALENESS_DAYS),
        project_max_lifetime: timedelta = timedelta(days=PROJECT_MAX_LIFETIME_DAYS),
        project_max_idle: timedelta = timedelta(days=PROJECT_MAX_IDLE_DAYS),
        max_workers: int = SCAN_WORKERS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._gateway = gateway
        self.project_pattern = project_pattern
        self.staleness_window = staleness_window
        self.project_max_lifetime = project_max_lifetime
        self.project_max_idle = project_max_idle
        self.max_workers = max(1, max_workers)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, gateway: BasecampGateway) -> ContentScanner:
        return cls(
            gateway=gateway,
            project_pattern=settings.project_pattern,
            staleness_window=settings.staleness_window,
            project_max_lifetime=settings.project_max_lifetime,
            project_max_idle=settings.project_max_idle,
            max_workers=settings.scan_workers,
        )

    def scan(self) -> list[ContentItem]:
        """
        Scan every eligible project

        Returns:
            All stale client items, grouped by project in project order
            (no deduplication)
        """
        now = self._clock()

        with time_block("scan.latency"):
            try:
                projects = self.fetch_client_projects(now)
            except TransientFetchError as exc:
                logger.error("Scan aborted, could not list projects: %s", exc)
                counter("scan.project_list_failures")
                return []

            logger.info("Scanning %d client projects", len(projects))
            results: list[list[ContentItem]] = [[] for _ in projects]

            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_idx = {
                    executor.submit(self.scan_project, project, now): idx
                    for idx, project in enumerate(projects)
                }
                for future in concurrent.futures.as_completed(future_to_idx):
                    idx = future_to_idx[future]
                    project = projects[idx]
                    try:
                        results[idx] = future.result()
                    except TransientFetchError as exc:
                        logger.error("Skipping project %s: %s", project.project_id, exc)
                        counter("scan.project_failures")
                    except (KeyError, TypeError, ValueError) as exc:
                        logger.error(
                            "Skipping project %s, malformed payload: %s", project.project_id, exc
                        )
                        counter("scan.project_failures")

        items = [item for project_items in results for item in project_items]
        log_event("scan.completed", projects=len(projects), items=len(items))
        return items

    def fetch_client_projects(self, now: datetime | None = None) -> list[Project]:
        """
        List eligible client projects

        Raises:
            TransientFetchError: If the project list cannot be fetched
        """
        try:
            raw_projects = self._gateway.get_all("projects.json")
        except ClientWatchError as exc:
            raise TransientFetchError(f"Could not list projects: {exc}") from exc

        projects = filter_client_projects(
            raw_projects,
            self.project_pattern,
            now or self._clock(),
            self.project_max_lifetime,
            self.project_max_idle,
        )
        counter("scan.projects", len(projects))
        return projects

    def scan_project(self, project: Project, now: datetime) -> list[ContentItem]:
        """
        Collect stale client items for one project

        Raises:
            TransientFetchError: If the project's messages cannot be fetched
        """
        if project.message_board_id is None:
            logger.info("Project %s has no message board, skipping", project.project_id)
            return []

        items: list[ContentItem] = []
        for message in self._fetch_messages(project):
            if is_client_content(message) and is_stale_unreplied(
                message, now, self.staleness_window
            ):
                items.append(self._message_item(project, message))

            if message.get("comments_count") == 0:
                continue

            comment = self._fetch_latest_comment(project, message)
            if (
                comment
                and is_client_content(comment)
                and is_stale_unreplied(
                    comment, now, self.staleness_window, require_no_replies=False
                )
            ):
                items.append(self._comment_item(project, message, comment))

        counter("scan.items", len(items))
        return items

    def _fetch_messages(self, project: Project) -> list[dict[str, Any]]:
        path = (
            f"buckets/{project.project_id}/message_boards/"
            f"{project.message_board_id}/messages.json"
        )
        try:
            return self._gateway.get_all(path)
        except ClientWatchError as exc:
            raise TransientFetchError(
                f"Could not fetch messages for project {project.project_id}: {exc}"
            ) from exc

    def _fetch_latest_comment(
        self, project: Project, message: dict[str, Any]
    ) -> dict[str, Any] | None:
        path = f"buckets/{project.project_id}/recordings/{message['id']}/comments.json"
        try:
            comments = self._gateway.get_all(path)
        except ClientWatchError as exc:
            logger.warning(
                "Could not fetch comments for message %s in project %s: %s",
                message["id"],
                project.project_id,
                exc,
            )
            counter("scan.comment_failures")
            return None
        return comments[-1] if comments else None

    @staticmethod
    def _message_item(project: Project, message: dict[str, Any]) -> ContentItem:
        return ContentItem(
            item_id=message["id"],
            item_type=ItemType.MESSAGE,
            project_id=project.project_id,
            message_board_id=project.message_board_id,
            subject=message.get("subject") or message.get("title") or "",
            url=message.get("url"),
            app_url=message.get("app_url"),
            created_at=message["created_at"],
            comments_count=message.get("comments_count"),
        )

    @staticmethod
    def _comment_item(
        project: Project, message: dict[str, Any], comment: dict[str, Any]
    ) -> ContentItem:
        subject = message.get("subject") or message.get("title") or ""
        return ContentItem(
            item_id=comment["id"],
            item_type=ItemType.COMMENT,
            project_id=project.project_id,
            message_board_id=project.message_board_id,
            subject=f"Comment on: {subject}",
            url=comment.get("url"),
            app_url=comment.get("app_url"),
            created_at=comment["created_at"],
        )
