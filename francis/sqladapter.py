"""A common interface over DB-API connections and their transactions.

The adapter expects a connection in autocommit mode (for ``sqlite3``,
``isolation_level=None``): statements run outside ``begin()`` take effect
immediately, and ``begin()`` opens an explicit transaction.
"""

from __future__ import annotations

from typing import Any


class NoRowsError(LookupError):
    """Raised by ``query_row`` when the query returns no rows."""

    def __init__(self) -> None:
        super().__init__("no rows in result set")


def _query_row(conn: Any, query: str, args: tuple) -> tuple:
    cursor = conn.cursor()
    try:
        cursor.execute(query, args)
        row = cursor.fetchone()
    finally:
        cursor.close()
    if row is None:
        raise NoRowsError()
    return tuple(row)


def _exec(conn: Any, query: str, args: tuple) -> int:
    cursor = conn.cursor()
    try:
        cursor.execute(query, args)
        count = cursor.rowcount
    finally:
        cursor.close()
    return max(count or 0, 0)


class TransactionAdapter:
    """A transaction opened by ``DatabaseAdapter.begin``.

    Used as a context manager, it commits on success and rolls back on error.
    """

    def __init__(self, conn: Any):
        self._conn = conn

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def query_row(self, query: str, *args: Any) -> tuple:
        """Run a query and return its first row; raise NoRowsError if there is none."""
        return _query_row(self._conn, query, args)

    def exec(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of rows it affected."""
        return _exec(self._conn, query, args)

    def __enter__(self) -> TransactionAdapter:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class DatabaseAdapter:
    """Wraps a DB-API connection with query, exec and transaction helpers."""

    def __init__(self, conn: Any):
        self._conn = conn

    @property
    def connection(self) -> Any:
        return self._conn

    def begin(self) -> TransactionAdapter:
        """Open a transaction on the connection."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN")
        finally:
            cursor.close()
        return TransactionAdapter(self._conn)

    def query_row(self, query: str, *args: Any) -> tuple:
        """Run a query and return its first row; raise NoRowsError if there is none."""
        return _query_row(self._conn, query, args)

    def exec(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of rows it affected."""
        return _exec(self._conn, query, args)

    def is_no_rows_error(self, err: BaseException | None) -> bool:
        """True if ``err`` signals that a query returned no rows."""
        return isinstance(err, NoRowsError)