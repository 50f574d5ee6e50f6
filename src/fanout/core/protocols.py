"""
Canonical protocol definitions for fanout-core.

Every module that talks to the database imports :class:`Connection` from
here. ``sqlite3.Connection`` wrapped by
:class:`~fanout.ops.sqlite_conn.SqliteConnection` satisfies it.

Guardrails:
    ❌ DON'T: Duplicate Connection(Protocol) in other modules
    ✅ DO: Import from fanout.core.protocols
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface for database operations.

    ``execute`` returns a cursor-like object exposing ``rowcount``;
    ``fetchone`` / ``fetchall`` read from the last executed statement.
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters. SYNC."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query. SYNC."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...
