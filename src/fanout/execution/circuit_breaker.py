"""Single-flight execution breaker.

At most one mission executes at a time across every process sharing the
database.  The breaker is one row in ``mission_breaker``; acquiring it is
an ``INSERT OR IGNORE``, so exactly one contender wins.  A holder that
crashed never wedges the system: once ``now - acquired_at`` exceeds the
timeout the row is deleted by the next contender.

Example:
    >>> breaker = ExecutionBreaker(conn)
    >>> if breaker.acquire(item_id=42, timeout_seconds=900):
    ...     try:
    ...         run_mission()
    ...     finally:
    ...         breaker.release()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fanout.core.logging import get_logger
from fanout.core.protocols import Connection
from fanout.core.timestamps import Clock, from_iso8601, to_db_timestamp, to_iso8601, utc_now

logger = get_logger(__name__)

BREAKER_NAME = "execution"


@dataclass(frozen=True, slots=True)
class BreakerState:
    """Current holder of the breaker."""

    owner_item_id: int
    acquired_at: datetime
    timeout_seconds: int

    @property
    def expires_at(self) -> datetime:
        return self.acquired_at + timedelta(seconds=self.timeout_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_item_id": self.owner_item_id,
            "acquired_at": to_iso8601(self.acquired_at),
            "timeout_seconds": self.timeout_seconds,
            "expires_at": to_iso8601(self.expires_at),
        }


class ExecutionBreaker:
    """Persisted mutual-exclusion lock with an owner tag and hard timeout."""

    def __init__(
        self,
        conn: Connection,
        *,
        timeout_seconds: int = 900,
        name: str = BREAKER_NAME,
        clock: Clock = utc_now,
    ) -> None:
        self._conn = conn
        self.timeout_seconds = timeout_seconds
        self.name = name
        self._clock = clock

    def acquire(self, item_id: int, timeout_seconds: int | None = None) -> bool:
        """Take the breaker for ``item_id``. False when someone else holds it."""
        timeout = timeout_seconds or self.timeout_seconds
        now = self._clock()

        reclaimed = self._conn.execute(
            "DELETE FROM mission_breaker WHERE name = ? AND expires_at < ?",
            (self.name, to_db_timestamp(now)),
        )
        if reclaimed.rowcount > 0:
            logger.warning("breaker_reclaimed", name=self.name, item_id=item_id)

        cursor = self._conn.execute(
            """
            INSERT OR IGNORE INTO mission_breaker
                (name, owner_item_id, acquired_at, expires_at, timeout_seconds)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                self.name,
                item_id,
                to_db_timestamp(now),
                to_db_timestamp(now + timedelta(seconds=timeout)),
                timeout,
            ),
        )
        self._conn.commit()

        acquired = cursor.rowcount > 0
        logger.debug("breaker_acquire", name=self.name, item_id=item_id, acquired=acquired)
        return acquired

    def release(self) -> None:
        """Clear the breaker regardless of owner."""
        self._conn.execute("DELETE FROM mission_breaker WHERE name = ?", (self.name,))
        self._conn.commit()

    def holder(self) -> BreakerState | None:
        """The live holder, or None when free or expired."""
        self._conn.execute(
            """
            SELECT owner_item_id, acquired_at, timeout_seconds
            FROM mission_breaker WHERE name = ? AND expires_at >= ?
            """,
            (self.name, to_db_timestamp(self._clock())),
        )
        row = self._conn.fetchone()
        if row is None:
            return None
        return BreakerState(
            owner_item_id=int(row[0]),
            acquired_at=from_iso8601(row[1]),
            timeout_seconds=int(row[2]),
        )

    @property
    def is_held(self) -> bool:
        return self.holder() is not None
