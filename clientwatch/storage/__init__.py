"""Storage - the token record, notification history and their models

Both repositories share the pooled connection from
clientwatch.infrastructure.database; every write runs in its own transaction.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from clientwatch.infrastructure.database import db_transaction, get_db_connection

Params = Sequence[Any]


class BaseRepository:
    """Read and write helpers over the pooled SQLite connection."""

    def fetch_one(self, query: str, params: Params = ()) -> dict[str, Any] | None:
        with get_db_connection() as conn:
            row = conn.execute(query, params).fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, query: str, params: Params = ()) -> list[dict[str, Any]]:
        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def write(self, query: str, params: Params = ()) -> None:
        """
        Run one INSERT/UPDATE statement

        Side Effects:
            - Commits on success, rolls back on error
        """
        with db_transaction() as conn:
            conn.execute(query, params)

    def write_many(self, query: str, rows: Iterable[Params]) -> int:
        """
        Run one statement for every parameter row in a single transaction

        Returns:
            Number of rows written

        Side Effects:
            - Commits once; a failing row rolls back the whole batch
        """
        batch = list(rows)
        if not batch:
            return 0
        with db_transaction() as conn:
            conn.executemany(query, batch)
        return len(batch)


__all__ = ["BaseRepository"]
