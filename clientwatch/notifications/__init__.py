"""Notifications - cooldown filtering and aggregate reminder threads"""

from __future__ import annotations

from clientwatch.notifications.engine import (
    NotificationEngine,
    NotificationSummary,
    find_notification_thread,
    group_by_project,
    render_notification_body,
    should_notify,
)

__all__ = [
    "NotificationEngine",
    "NotificationSummary",
    "find_notification_thread",
    "group_by_project",
    "render_notification_body",
    "should_notify",
]
