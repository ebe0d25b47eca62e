#!/usr/bin/env python3
"""ClientWatch batch entrypoint

Runs one reconciliation pass: load the credential, scan client projects for
stale unanswered content, post reminders, exit.

Usage:
    clientwatch-run              # scan and notify
    clientwatch-run --dry-run    # scan only, log what would be notified
    clientwatch-run --init-db    # create the database schema and exit

Exit codes:
    0  run completed (individual project failures are logged, not fatal)
    1  no usable credential (authorize through clientwatch-api first)
    2  configuration error
    3  database error (schema missing, locked or unwritable)
"""

from __future__ import annotations

import argparse
import sqlite3
import sys
from dataclasses import asdict

import requests
from dotenv import load_dotenv

from clientwatch.basecamp.gateway import BasecampGateway
from clientwatch.basecamp.oauth import CredentialManager
from clientwatch.config import Settings, load_settings
from clientwatch.exceptions import CredentialEncryptionError, MissingCredentialsError
from clientwatch.infrastructure.database import init_database, validate_schema
from clientwatch.notifications.engine import NotificationEngine, NotificationSummary
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import get_latency_stats, log_event
from clientwatch.scanner.content_scanner import ContentScanner
from clientwatch.storage.history_repository import NotificationHistoryRepository
from clientwatch.storage.token_repository import TokenRepository

logger = get_logger(__name__)


def run_once(
    settings: Settings,
    credentials: CredentialManager,
    history_repo: NotificationHistoryRepository,
    session: requests.Session | None = None,
    dry_run: bool = False,
) -> NotificationSummary:
    """
    One scan-and-notify pass

    Raises:
        MissingCredentialsError: If no credential is stored
        CredentialEncryptionError: If the stored credential cannot be decrypted
    """
    credentials.get_current_credential()

    gateway = BasecampGateway.from_settings(settings, credentials, session=session)
    items = ContentScanner.from_settings(settings, gateway).scan()
    logger.info("Scan found %d stale client items", len(items))

    if dry_run:
        for item in items:
            logger.info(
                "[dry-run] project=%s %s %s: %s",
                item.project_id,
                item.item_type.value,
                item.item_id,
                item.subject,
            )
        return NotificationSummary(candidates=len(items))

    engine = NotificationEngine.from_settings(settings, gateway, history_repo)
    return engine.run(items)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Remind about stale client content in Basecamp")
    parser.add_argument("--dry-run", action="store_true", help="scan only, post nothing")
    parser.add_argument("--init-db", action="store_true", help="create the schema and exit")
    args = parser.parse_args(argv)

    try:
        init_database()
        validate_schema()
    except (sqlite3.Error, ValueError) as e:
        logger.critical("Database unusable: %s", e)
        return 3
    if args.init_db:
        logger.info("Database initialized")
        return 0

    try:
        settings = load_settings()
        token_repo = TokenRepository()
    except ValueError as e:
        logger.critical("Configuration error: %s", e)
        return 2

    credentials = CredentialManager.from_settings(settings, token_repo)

    try:
        summary = run_once(
            settings,
            credentials,
            NotificationHistoryRepository(),
            dry_run=args.dry_run,
        )
    except (MissingCredentialsError, CredentialEncryptionError) as e:
        logger.critical("No usable Basecamp credential: %s", e)
        return 1
    except sqlite3.Error as e:
        logger.critical("Notification history unavailable: %s", e)
        return 3

    scan_latency = get_latency_stats("scan.latency")
    log_event(
        "run.completed",
        dry_run=args.dry_run,
        scan_seconds=round(scan_latency["max"], 3),
        **asdict(summary),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
