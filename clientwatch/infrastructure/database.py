"""Centralized database configuration

ClientWatch keeps all durable state (the OAuth token record and the
notification history) in ONE SQLite database, by default
clientwatch/data/clientwatch.db, overridable with CLIENTWATCH_DB_PATH.

Provides:
- Connection pooling (reuses connections across scanner threads)
- Single source of truth for the database path
- Transaction context manager with commit/rollback
- Retry with backoff on SQLITE_BUSY
"""

from __future__ import annotations

import atexit
import os
import random
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, TypeVar

from clientwatch.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
    DEFAULT_DB_PATH,
)
from clientwatch.infrastructure import database_schema
from clientwatch.observability.logging import get_logger
from clientwatch.observability.telemetry import counter

F = TypeVar("F", bound=Callable[..., Any])

logger = get_logger(__name__)


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Decorator to retry database operations on SQLITE_BUSY errors

    Args:
        max_retries: Maximum number of retry attempts (default: 5)
        base_delay: Initial delay in seconds (default: 0.1)
        max_delay: Maximum delay between retries (default: 2.0)

    Side Effects:
        - Retries wrapped function up to max_retries times on database lock errors
        - Sleeps between retries (exponential backoff with jitter)
        - Logs warning messages for each retry attempt
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            "Database lock retry exhausted after %d attempts: %s",
                            max_retries,
                            e,
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    sleep_time = delay + random.uniform(0, delay * DB_RETRY_JITTER)
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.2fs: %s",
                        attempt + 1,
                        max_retries,
                        sleep_time,
                        e,
                    )
                    counter("database.lock_retries")
                    time.sleep(sleep_time)

            raise AssertionError("unreachable")

        return wrapper  # type: ignore[return-value]

    return decorator


class DatabaseConnectionPool:
    """
    Thread-safe connection pool for SQLite

    Connections are opened with WAL journaling so scanner threads can read
    while the engine writes.
    """

    def __init__(self, db_path: Path, pool_size: int = DB_POOL_SIZE):
        self.db_path = db_path
        self.pool_size = pool_size
        self.pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self.closed = False
        for _ in range(pool_size):
            self.pool.put(self._create_connection())

        atexit.register(self.close_all)

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=DB_CONNECT_TIMEOUT,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.row_factory = sqlite3.Row
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """
        Get connection from pool

        Raises:
            RuntimeError: If pool closed or exhausted past DB_POOL_TIMEOUT
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self.pool.get(block=True, timeout=DB_POOL_TIMEOUT)
        except Empty:
            logger.critical("Connection pool exhausted (pool_size=%d)", self.pool_size)
            counter("database.pool_exhausted")
            raise RuntimeError(
                f"Database connection pool exhausted (pool_size={self.pool_size})"
            ) from None

    def return_connection(self, conn: sqlite3.Connection) -> None:
        if self.closed:
            conn.close()
            return
        try:
            self.pool.put_nowait(conn)
        except Full:
            logger.warning("Failed to return connection to pool (pool full), closing")
            conn.close()

    def close_all(self) -> None:
        """
        Close all pooled connections (cleanup)

        Side Effects:
            - Sets self.closed flag to True
            - Closes all database connections in pool
        """
        self.closed = True
        while not self.pool.empty():
            try:
                self.pool.get_nowait().close()
            except Empty:
                break


def get_db_path() -> Path:
    """
    Get database path (environment-aware)

    Checks CLIENTWATCH_DB_PATH first, falls back to the default location.
    """
    if env_path := os.getenv("CLIENTWATCH_DB_PATH"):
        return Path(env_path)
    return DEFAULT_DB_PATH


_POOLS: dict[str, DatabaseConnectionPool] = {}
_POOLS_LOCK = Lock()


def get_pool() -> DatabaseConnectionPool:
    """
    Get or create the connection pool for the current database path

    Side Effects:
        - Opens pooled connections on first use of a path
    """
    key = str(get_db_path())
    with _POOLS_LOCK:
        pool = _POOLS.get(key)
        if pool is None or pool.closed:
            pool = DatabaseConnectionPool(Path(key), pool_size=DB_POOL_SIZE)
            _POOLS[key] = pool
        return pool


def reset_pools() -> None:
    """
    Close every pool (tests switch CLIENTWATCH_DB_PATH between cases)

    Side Effects:
        - Closes pooled connections and forgets the pools
    """
    with _POOLS_LOCK:
        for pool in _POOLS.values():
            pool.close_all()
        _POOLS.clear()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Get pooled database connection (context manager)

    Raises:
        FileNotFoundError: If database doesn't exist
    """
    db_path = get_db_path()

    if not db_path.exists():
        raise FileNotFoundError(
            f"Database not found: {db_path}\nRun: clientwatch-run --init-db"
        )

    pool = get_pool()
    conn = pool.get_connection()
    try:
        yield conn
    finally:
        pool.return_connection(conn)


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for database transactions

    Automatically commits on success, rolls back on error.

    Side Effects:
        - Commits transaction on success
        - Rolls back transaction on exception
    """
    with get_db_connection() as conn:
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def init_database() -> None:
    """Initialize the schema at the configured database path (idempotent)."""
    database_schema.init_database(get_db_path())


def validate_schema() -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables are missing
    """
    with get_db_connection() as conn:
        return database_schema.validate_schema(conn)
