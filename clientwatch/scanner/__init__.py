"""Scanner - stale client content detection"""

from __future__ import annotations

from clientwatch.scanner.content_scanner import (
    ContentScanner,
    filter_client_projects,
    find_message_board_id,
    is_client_content,
    is_stale_unreplied,
)

__all__ = [
    "ContentScanner",
    "filter_client_projects",
    "find_message_board_id",
    "is_client_content",
    "is_stale_unreplied",
]
