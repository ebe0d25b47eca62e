"""Logging setup shared by the runner, the scanner workers and the web app."""

from __future__ import annotations

import logging
import os
import sys
from typing import Final

_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"
_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Loggers of the HTTP stack; DEBUG on these would echo request headers
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("urllib3", "requests", "httpx", "httpcore")

_configured = False


def _resolve_level() -> int:
    level_name = os.getenv("CLIENTWATCH_LOG_LEVEL", "INFO").upper()
    return logging.getLevelNamesMapping().get(level_name, logging.INFO)


def configure_logging() -> None:
    """
    Attach one stderr handler to the "clientwatch" logger (idempotent)

    Side Effects:
        - Sets the clientwatch logger level from CLIENTWATCH_LOG_LEVEL
        - Caps the HTTP client loggers at WARNING
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))

    package_logger = logging.getLogger("clientwatch")
    package_logger.addHandler(handler)
    package_logger.setLevel(_resolve_level())
    package_logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the clientwatch hierarchy."""
    configure_logging()
    if name != "clientwatch" and not name.startswith("clientwatch."):
        name = f"clientwatch.{name}"
    return logging.getLogger(name)
