"""ClientWatch - reminders for stale, unanswered client content in Basecamp"""

from __future__ import annotations

__version__ = "1.0.0"
