"""SQLite-backed job scheduler.

Jobs live in ``mission_jobs`` so that a job placed by one invocation is
fired by whichever process ticks next.  ``run_due`` claims each due job
with a conditional ``UPDATE ... WHERE status = 'pending'`` before
dispatching, so two tickers never both run the same job occurrence.

Job lifecycle::

    pending ──claim──► running ──ok──► done
       ▲                  │
       │                  └──handler raised──► failed
       └── recurring jobs are re-armed at not_before + interval
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from fanout.core.logging import get_logger
from fanout.core.protocols import Connection
from fanout.core.timestamps import Clock, from_iso8601, to_db_timestamp, utc_now
from fanout.scheduling.protocol import HookHandler, JobHandle, JobPayload

logger = get_logger(__name__)


@dataclass
class DispatchReport:
    """What one ``run_due`` pass did."""

    dispatched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.dispatched) + len(self.failed) + len(self.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispatched": list(self.dispatched),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
        }


class SqliteJobScheduler:
    """``JobScheduler`` persisted in the ``mission_jobs`` table.

    Example:
        >>> scheduler = SqliteJobScheduler(conn)
        >>> scheduler.register("mission.process", lambda item_id: ...)
        >>> handle = scheduler.schedule_once(
        ...     JobPayload("mission.process", {"item_id": 42}), now + timedelta(seconds=45)
        ... )
        >>> scheduler.run_due()  # later, from a ticker
    """

    def __init__(self, conn: Connection, clock: Clock = utc_now) -> None:
        self._conn = conn
        self._clock = clock
        self._handlers: dict[str, HookHandler] = {}

    # === Handlers ===

    def register(self, hook: str, handler: HookHandler) -> None:
        """Bind a hook name to the callable that runs its jobs."""
        self._handlers[hook] = handler

    @property
    def hooks(self) -> list[str]:
        return sorted(self._handlers)

    # === Placement ===

    def schedule_once(self, payload: JobPayload, not_before: datetime) -> JobHandle | None:
        return self._insert(payload, not_before, interval_seconds=None, job_id=None)

    def schedule_recurring(
        self, name: str, interval_seconds: int, payload: JobPayload | None = None
    ) -> JobHandle | None:
        """Install a recurring job keyed by ``name``.

        Idempotent: an already pending recurring job with the same name is
        returned unchanged.
        """
        job_id = f"recurring:{name}"
        self._conn.execute(
            "SELECT hook, not_before FROM mission_jobs WHERE id = ? AND status = 'pending'",
            (job_id,),
        )
        row = self._conn.fetchone()
        if row is not None:
            return JobHandle(id=job_id, hook=row[0], not_before=from_iso8601(row[1]))

        payload = payload or JobPayload(hook=name)
        not_before = self._clock() + timedelta(seconds=interval_seconds)
        return self._insert(payload, not_before, interval_seconds=interval_seconds, job_id=job_id)

    def _insert(
        self,
        payload: JobPayload,
        not_before: datetime,
        *,
        interval_seconds: int | None,
        job_id: str | None,
    ) -> JobHandle | None:
        job_id = job_id or uuid4().hex
        now = to_db_timestamp(self._clock())
        try:
            self._conn.execute(
                """
                INSERT INTO mission_jobs
                    (id, hook, payload, not_before, interval_seconds, status, attempts,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 'pending', 0, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    hook = excluded.hook,
                    payload = excluded.payload,
                    not_before = excluded.not_before,
                    interval_seconds = excluded.interval_seconds,
                    status = 'pending',
                    updated_at = excluded.updated_at
                """,
                (
                    job_id,
                    payload.hook,
                    json.dumps(payload.args),
                    to_db_timestamp(not_before),
                    interval_seconds,
                    now,
                    now,
                ),
            )
            self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("job_schedule_failed", hook=payload.hook, error=str(e))
            self._conn.rollback()
            return None

        logger.debug("job_scheduled", job_id=job_id, hook=payload.hook, not_before=not_before.isoformat())
        return JobHandle(id=job_id, hook=payload.hook, not_before=not_before)

    # === Removal ===

    def cancel(self, handle: JobHandle | str) -> bool:
        job_id = handle.id if isinstance(handle, JobHandle) else str(handle)
        cursor = self._conn.execute(
            "DELETE FROM mission_jobs WHERE id = ? AND status = 'pending'",
            (job_id,),
        )
        self._conn.commit()
        removed = cursor.rowcount > 0
        if removed:
            logger.debug("job_cancelled", job_id=job_id)
        return removed

    def clear_recurring(self, name: str) -> bool:
        """Remove a recurring job regardless of its state."""
        cursor = self._conn.execute("DELETE FROM mission_jobs WHERE id = ?", (f"recurring:{name}",))
        self._conn.commit()
        return cursor.rowcount > 0

    def clear_hook(self, hook: str) -> int:
        """Remove every pending job for ``hook``. Returns the number removed."""
        cursor = self._conn.execute(
            "DELETE FROM mission_jobs WHERE hook = ? AND status = 'pending'",
            (hook,),
        )
        self._conn.commit()
        return max(cursor.rowcount, 0)

    # === Inspection ===

    def pending(self, hook: str | None = None) -> list[dict[str, Any]]:
        """Pending jobs, soonest first."""
        sql = """
            SELECT id, hook, payload, not_before, interval_seconds, attempts
            FROM mission_jobs WHERE status = 'pending'
        """
        params: tuple = ()
        if hook is not None:
            sql += " AND hook = ?"
            params = (hook,)
        sql += " ORDER BY not_before, id"
        self._conn.execute(sql, params)
        return [
            {
                "id": row[0],
                "hook": row[1],
                "args": json.loads(row[2]),
                "not_before": from_iso8601(row[3]),
                "interval_seconds": row[4],
                "attempts": row[5],
            }
            for row in self._conn.fetchall()
        ]

    # === Dispatch ===

    def _claim(self, job_id: str) -> bool:
        cursor = self._conn.execute(
            """
            UPDATE mission_jobs
            SET status = 'running', attempts = attempts + 1, updated_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (to_db_timestamp(self._clock()), job_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def _finish(self, job_id: str, interval_seconds: int | None, not_before: str, error: str | None) -> None:
        now = self._clock()
        if interval_seconds:
            # Re-arm from the later of the planned slot and now so a long outage
            # does not fire a burst of catch-up runs.
            planned = from_iso8601(not_before) or now
            next_run = max(planned, now) + timedelta(seconds=interval_seconds)
            self._conn.execute(
                """
                UPDATE mission_jobs
                SET status = 'pending', not_before = ?, last_error = ?, updated_at = ?
                WHERE id = ?
                """,
                (to_db_timestamp(next_run), error, to_db_timestamp(now), job_id),
            )
        else:
            self._conn.execute(
                "UPDATE mission_jobs SET status = ?, last_error = ?, updated_at = ? WHERE id = ?",
                ("failed" if error else "done", error, to_db_timestamp(now), job_id),
            )
        self._conn.commit()

    def run_due(self, now: datetime | None = None) -> DispatchReport:
        """Dispatch every pending job whose ``not_before`` has passed.

        A handler exception marks that job failed and is logged; it never
        stops the remaining jobs from running.
        """
        now = now or self._clock()
        self._conn.execute(
            """
            SELECT id, hook, payload, not_before, interval_seconds
            FROM mission_jobs
            WHERE status = 'pending' AND not_before <= ?
            ORDER BY not_before, id
            """,
            (to_db_timestamp(now),),
        )
        due = [tuple(row) for row in self._conn.fetchall()]

        report = DispatchReport()
        for job_id, hook, raw_args, not_before, interval_seconds in due:
            handler = self._handlers.get(hook)
            if handler is None:
                logger.warning("job_hook_unregistered", job_id=job_id, hook=hook)
                report.skipped.append(job_id)
                continue
            if not self._claim(job_id):
                report.skipped.append(job_id)
                continue

            error: str | None = None
            try:
                handler(**json.loads(raw_args))
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.exception("job_handler_failed", job_id=job_id, hook=hook)

            self._finish(job_id, interval_seconds, not_before, error)
            (report.failed if error else report.dispatched).append(job_id)

        if due:
            logger.info("jobs_dispatched", **report.to_dict())
        return report
