"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~fanout.core.protocols.Connection` protocol.

A bare ``sqlite3.Connection`` exposes ``execute()`` (returns a cursor)
but not ``fetchone()`` / ``fetchall()`` at the connection level.  This
adapter bridges the gap so the state store, scheduler and content store
can share one connection.

Usage::

    from fanout.ops.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (?)", (1,))
    conn.execute("SELECT * FROM t")
    row = conn.fetchone()
    conn.commit()
    conn.close()
"""

from __future__ import annotations

import sqlite3
from typing import Any


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Maintains a single cursor so that ``execute`` / ``fetchone`` /
    ``fetchall`` operate on the same result set.  ``timeout`` is the
    busy-wait applied when another process holds the write lock.
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        row_factory: Any = sqlite3.Row,
        timeout: float = 5.0,
    ) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, timeout=timeout)
        self._conn.row_factory = row_factory
        self._cursor = self._conn.cursor()
        self.path = path

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, params)
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteConnection({self.path!r})"
