"""Persisted singletons with per-key expiry.

Mission coordination state (abort flag, failure counter, last failure
timestamp) must survive process restarts and be shared by independently
triggered invocations.  ``StateStore`` keeps each value as a JSON document
in ``mission_state`` with an optional ``expires_at``; an expired key reads
as absent and is removed lazily.

Every mutation is a single SQL statement followed by a commit, so two
invocations racing on the same key never observe a half-written value.

Example:
    >>> store = StateStore(conn)
    >>> store.set("abort", True)
    >>> store.get("abort")
    True
    >>> store.increment("failures", ttl_seconds=3600)
    1
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from fanout.core.logging import get_logger
from fanout.core.protocols import Connection
from fanout.core.timestamps import Clock, to_db_timestamp, utc_now

logger = get_logger(__name__)


class StateStore:
    """Key/value singletons backed by the ``mission_state`` table."""

    def __init__(self, conn: Connection, clock: Clock = utc_now) -> None:
        self._conn = conn
        self._clock = clock

    def _expiry(self, ttl_seconds: int | None) -> str | None:
        if ttl_seconds is None:
            return None
        return to_db_timestamp(self._clock() + timedelta(seconds=ttl_seconds))

    def _purge_expired(self, key: str) -> None:
        self._conn.execute(
            "DELETE FROM mission_state WHERE key = ? AND expires_at IS NOT NULL AND expires_at <= ?",
            (key, to_db_timestamp(self._clock())),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value; expired or missing keys return ``default``."""
        self._purge_expired(key)
        self._conn.commit()
        self._conn.execute("SELECT value FROM mission_state WHERE key = ?", (key,))
        row = self._conn.fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Write a value, replacing any previous one and its expiry."""
        now = to_db_timestamp(self._clock())
        self._conn.execute(
            """
            INSERT INTO mission_state (key, value, updated_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at,
                expires_at = excluded.expires_at
            """,
            (key, json.dumps(value), now, self._expiry(ttl_seconds)),
        )
        self._conn.commit()

    def delete(self, *keys: str) -> int:
        """Remove keys. Returns the number of keys that existed."""
        removed = 0
        for key in keys:
            cursor = self._conn.execute("DELETE FROM mission_state WHERE key = ?", (key,))
            removed += max(cursor.rowcount, 0)
        self._conn.commit()
        return removed

    def increment(self, key: str, amount: int = 1, ttl_seconds: int | None = None) -> int:
        """Atomically add ``amount`` to an integer key and refresh its expiry.

        A missing or expired key starts from zero.  Returns the new value.
        """
        now = to_db_timestamp(self._clock())
        expires = self._expiry(ttl_seconds)
        self._purge_expired(key)
        self._conn.execute(
            """
            INSERT INTO mission_state (key, value, updated_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                value = CAST(mission_state.value AS INTEGER) + ?,
                updated_at = excluded.updated_at,
                expires_at = excluded.expires_at
            """,
            (key, json.dumps(amount), now, expires, amount),
        )
        self._conn.commit()
        self._conn.execute("SELECT value FROM mission_state WHERE key = ?", (key,))
        row = self._conn.fetchone()
        value = int(json.loads(row[0])) if row else amount
        logger.debug("state_incremented", key=key, value=value)
        return value

    def keys(self) -> list[str]:
        """List live (non-expired) keys."""
        self._conn.execute(
            "SELECT key FROM mission_state WHERE expires_at IS NULL OR expires_at > ? ORDER BY key",
            (to_db_timestamp(self._clock()),),
        )
        return [row[0] for row in self._conn.fetchall()]
