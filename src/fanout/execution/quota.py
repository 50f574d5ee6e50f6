"""Daily quota ledger.

One counter per local calendar day in ``mission_quota``.  Admission
reserves a slot *after* its job is placed, then re-reads the committed
count (reconcile); if the day went over the limit the caller gives its
slot back and cancels its own job.  The counter therefore never settles
above the limit even when several admissions race.

Modes:
    atomic (default)   ``UPDATE ... SET count = count + 1 WHERE count < max``
    optimistic         unconditional increment; reconcile catches overruns
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from fanout.core.logging import get_logger
from fanout.core.protocols import Connection
from fanout.core.timestamps import Clock, to_db_timestamp, utc_now
from fanout.observability.mission_log import LogCategory, MissionLog

logger = get_logger(__name__)


class QuotaLedger:
    """Per-day admission counter with compare-and-increment reservation.

    Attributes:
        max_per_day: Daily limit
        atomic: Use compare-and-increment; otherwise increment unconditionally
        attempts: Tries against a locked database before giving up
        backoff_seconds: Pause between those tries
        retention_days: Counters this many days old (or older) are pruned
    """

    def __init__(
        self,
        conn: Connection,
        *,
        max_per_day: int = 50,
        timezone: str = "UTC",
        atomic: bool = True,
        attempts: int = 10,
        backoff_seconds: float = 0.05,
        retention_days: int = 2,
        mission_log: MissionLog | None = None,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._conn = conn
        self.max_per_day = max_per_day
        self.atomic = atomic
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.retention_days = retention_days
        self._tz = ZoneInfo(timezone)
        self._log = mission_log
        self._clock = clock
        self._sleep = sleep

    def today(self) -> date:
        """Local calendar day in the configured timezone."""
        return self._clock().astimezone(self._tz).date()

    def count(self, day: date | None = None) -> int:
        day = day or self.today()
        self._conn.execute("SELECT count FROM mission_quota WHERE day = ?", (day.isoformat(),))
        row = self._conn.fetchone()
        return int(row[0]) if row else 0

    def has_capacity(self, day: date | None = None) -> bool:
        return self.count(day) < self.max_per_day

    def reserve(self, day: date | None = None) -> bool:
        """Take one slot for ``day``.

        Returns False when the day is full (atomic mode) or when the
        database stayed locked for every attempt.
        """
        day = day or self.today()
        self.prune()
        key = day.isoformat()
        for attempt in range(1, self.attempts + 1):
            now = to_db_timestamp(self._clock())
            try:
                self._conn.execute(
                    """
                    INSERT INTO mission_quota (day, count, updated_at) VALUES (?, 0, ?)
                    ON CONFLICT (day) DO NOTHING
                    """,
                    (key, now),
                )
                if self.atomic:
                    cursor = self._conn.execute(
                        "UPDATE mission_quota SET count = count + 1, updated_at = ? WHERE day = ? AND count < ?",
                        (now, key, self.max_per_day),
                    )
                else:
                    cursor = self._conn.execute(
                        "UPDATE mission_quota SET count = count + 1, updated_at = ? WHERE day = ?",
                        (now, key),
                    )
                self._conn.commit()
            except sqlite3.OperationalError as e:
                self._conn.rollback()
                logger.warning("quota_reserve_contended", day=key, attempt=attempt, error=str(e))
                self._sleep(self.backoff_seconds)
                continue

            reserved = cursor.rowcount > 0
            logger.debug("quota_reserve", day=key, reserved=reserved, attempt=attempt)
            return reserved

        message = f"Failed to increment daily quota for {key} after {self.attempts} attempts"
        if self._log is not None:
            self._log.write(LogCategory.ERROR, message)
        else:
            logger.error("quota_reserve_exhausted", day=key, attempts=self.attempts)
        return False

    def reconcile(self, day: date | None = None, max_per_day: int | None = None) -> bool:
        """Re-read the committed count. True means the day is overrun."""
        limit = self.max_per_day if max_per_day is None else max_per_day
        current = self.count(day)
        overrun = current > limit
        if overrun:
            logger.warning("quota_overrun", day=(day or self.today()).isoformat(), count=current, limit=limit)
        return overrun

    def decrement(self, day: date | None = None) -> int:
        """Give one slot back, never going below zero. Returns the new count."""
        day = day or self.today()
        self._conn.execute(
            "UPDATE mission_quota SET count = MAX(count - 1, 0), updated_at = ? WHERE day = ?",
            (to_db_timestamp(self._clock()), day.isoformat()),
        )
        self._conn.commit()
        return self.count(day)

    def prune(self) -> int:
        """Delete counters ``retention_days`` old or older."""
        cutoff = self.today() - timedelta(days=self.retention_days)
        cursor = self._conn.execute("DELETE FROM mission_quota WHERE day <= ?", (cutoff.isoformat(),))
        self._conn.commit()
        return max(cursor.rowcount, 0)
