"""Health sweep and aggregate health signal.

The sweep runs on a fixed interval and repairs state that no in-flight
invocation will ever fix:

    (a) scheduled / retry records whose job never fired → timeout
    (b) failure counter idle for an hour → reset
    (c) mission log over its size limit → rotate
    (d) quota counters past retention → prune
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from fanout.core.logging import get_logger
from fanout.core.settings import MissionSettings
from fanout.core.timestamps import Clock, to_iso8601, utc_now
from fanout.execution.abort import AbortFlag
from fanout.execution.circuit_breaker import BreakerState, ExecutionBreaker
from fanout.execution.models import PENDING_STATUSES, MissionStatus
from fanout.execution.quota import QuotaLedger
from fanout.execution.repository import MissionRepository
from fanout.execution.retry import FailureCounter
from fanout.observability.mission_log import LogCategory, MissionLog
from fanout.scheduling.protocol import JobScheduler

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """What one sweep changed."""

    ran_at: datetime
    timed_out: list[int] = field(default_factory=list)
    failures_reset: bool = False
    log_rotated: Path | None = None
    quota_pruned: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ran_at": to_iso8601(self.ran_at),
            "timed_out": list(self.timed_out),
            "failures_reset": self.failures_reset,
            "log_rotated": str(self.log_rotated) if self.log_rotated else None,
            "quota_pruned": self.quota_pruned,
        }


@dataclass(frozen=True, slots=True)
class HealthSignal:
    """Aggregate operator view of the mission."""

    status: str
    daily_count: int
    daily_limit: int
    failure_count: int
    health: str
    breaker: BreakerState | None
    abort: bool
    emergency_stop: bool

    @property
    def nominal(self) -> bool:
        return self.health == "NOMINAL"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "daily_count": self.daily_count,
            "daily_limit": self.daily_limit,
            "failure_count": self.failure_count,
            "health": self.health,
            "breaker": self.breaker.to_dict() if self.breaker else None,
            "abort": self.abort,
            "emergency_stop": self.emergency_stop,
        }


class HealthMonitor:
    """Periodic reconciliation of stale mission state."""

    def __init__(
        self,
        settings: MissionSettings,
        *,
        repository: MissionRepository,
        failure_counter: FailureCounter,
        ledger: QuotaLedger,
        breaker: ExecutionBreaker,
        abort_flag: AbortFlag,
        mission_log: MissionLog,
        scheduler: JobScheduler | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self._repo = repository
        self._failures = failure_counter
        self._ledger = ledger
        self._breaker = breaker
        self._abort = abort_flag
        self._log = mission_log
        self._scheduler = scheduler
        self._clock = clock

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport(ran_at=now)
        stale_after = timedelta(seconds=self.settings.stale_after_seconds)
        holder = self._breaker.holder()
        running = holder.owner_item_id if holder else None

        for record in self._repo.find_by_status(*PENDING_STATUSES):
            if record.item_id == running:
                continue
            placed_at = record.scheduled_at or (record.snapshot.admitted_at if record.snapshot else None)
            if placed_at is None or now - placed_at <= stale_after:
                continue
            if record.job_id and self._scheduler is not None:
                self._scheduler.cancel(record.job_id)
            previous = record.status
            record.status = MissionStatus.TIMEOUT
            record.error = None
            record.completed_at = now
            record.job_id = None
            self._repo.save(record)
            report.timed_out.append(record.item_id)
            self._log.write(
                LogCategory.HEALTH,
                f"Item {record.item_id} timed out after {int((now - placed_at).total_seconds())}s "
                f"in status {previous.value}",
            )

        if self._failures.decay(self.settings.failure_decay_seconds, now):
            report.failures_reset = True
            self._log.write(LogCategory.HEALTH, "Failure counter reset after a quiet period")

        report.log_rotated = self._log.rotate_if_needed()
        report.quota_pruned = self._ledger.prune()

        logger.info("health_sweep", **report.to_dict())
        return report

    def signal(self) -> HealthSignal:
        failures = self._failures.count()
        abort = self._abort.is_set()
        return HealthSignal(
            status="ACTIVE" if self.settings.active else "STANDBY",
            daily_count=self._ledger.count(),
            daily_limit=self._ledger.max_per_day,
            failure_count=failures,
            health="WARNINGS" if failures > 0 or abort else "NOMINAL",
            breaker=self._breaker.holder(),
            abort=abort,
            emergency_stop=self.settings.emergency_stop,
        )
