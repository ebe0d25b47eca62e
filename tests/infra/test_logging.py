from __future__ import annotations

import logging

from clientwatch.observability.logging import configure_logging, get_logger


def test_get_logger_stays_under_package_hierarchy():
    assert get_logger("clientwatch.scanner.content_scanner").name == (
        "clientwatch.scanner.content_scanner"
    )
    assert get_logger("__main__").name == "clientwatch.__main__"


def test_configure_logging_attaches_one_handler():
    configure_logging()
    configure_logging()
    get_logger("clientwatch.runner")

    package_logger = logging.getLogger("clientwatch")
    assert len(package_logger.handlers) == 1
    assert "%(threadName)s" in package_logger.handlers[0].formatter._fmt


def test_http_client_loggers_are_capped():
    configure_logging()

    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING
