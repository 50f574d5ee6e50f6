"""Mission control: one object wiring every mission component.

::

    MissionSettings ──► MissionControl.from_settings()
                           │
                           ├── SqliteConnection + schema
                           ├── SqliteContentStore / ContentStoreDuplicator
                           ├── StateStore ─► AbortFlag, FailureCounter
                           ├── QuotaLedger, ExecutionBreaker, MissionLog
                           ├── SqliteJobScheduler
                           │      mission.process ─► DuplicationExecutor.execute
                           │      mission.health  ─► HealthMonitor.sweep
                           └── AdmissionGate

Entry points map onto the host system's events: ``on_item_created`` for
new content, ``run_due`` for the scheduler tick, ``activate`` /
``deactivate`` for install and removal.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from fanout import __version__
from fanout.content.duplicator import ContentStoreDuplicator, Duplicator, probe_duplicator
from fanout.content.models import CallerSignal, ContentItem
from fanout.content.store import SqliteContentStore
from fanout.core.errors import ConfigError
from fanout.core.logging import get_logger
from fanout.core.protocols import Connection
from fanout.core.schema import apply_schema
from fanout.core.settings import MissionSettings, get_settings
from fanout.core.state import StateStore
from fanout.core.timestamps import Clock, to_iso8601, utc_now
from fanout.execution.abort import AbortFlag
from fanout.execution.admission import (
    PROCESS_HOOK,
    AdmissionGate,
    CallerCheck,
    automation_caller_check,
)
from fanout.execution.circuit_breaker import ExecutionBreaker
from fanout.execution.executor import DuplicationExecutor
from fanout.execution.health import HealthMonitor, HealthSignal, SweepReport
from fanout.execution.models import AdmissionDecision, ExecutionOutcome, MissionRecord
from fanout.execution.quota import QuotaLedger
from fanout.execution.repository import MissionRepository
from fanout.execution.retry import ConstantBackoff, FailureCounter, RetryPolicy
from fanout.observability.mission_log import LogCategory, MissionLog
from fanout.ops.sqlite_conn import SqliteConnection
from fanout.scheduling.job_scheduler import DispatchReport, SqliteJobScheduler

logger = get_logger(__name__)

HEALTH_HOOK = "mission.health"


class MissionControl:
    """Owns the mission components and the hooks binding them to the scheduler."""

    def __init__(
        self,
        settings: MissionSettings,
        conn: Connection,
        *,
        duplicator: Duplicator | None = None,
        caller_check: CallerCheck = automation_caller_check,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.conn = conn
        self._clock = clock

        apply_schema(conn)
        self.store = SqliteContentStore(conn, clock=clock)
        self.duplicator = duplicator if duplicator is not None else ContentStoreDuplicator(self.store)
        self.state = StateStore(conn, clock=clock)
        self.repository = MissionRepository(self.store)
        self.mission_log = MissionLog(
            settings.log_file,
            max_bytes=settings.log_max_bytes,
            backups=settings.log_backups,
            clock=clock,
        )
        self.ledger = QuotaLedger(
            conn,
            max_per_day=settings.max_per_day,
            timezone=settings.timezone,
            atomic=settings.quota_atomic_reserve,
            attempts=settings.quota_increment_attempts,
            backoff_seconds=settings.quota_backoff_seconds,
            retention_days=settings.quota_retention_days,
            mission_log=self.mission_log,
            clock=clock,
            sleep=sleep,
        )
        self.breaker = ExecutionBreaker(conn, timeout_seconds=settings.breaker_timeout, clock=clock)
        self.abort_flag = AbortFlag(self.state)
        self.failures = FailureCounter(
            self.state,
            count_ttl_seconds=settings.failure_count_ttl_seconds,
            last_failure_ttl_seconds=settings.last_failure_ttl_seconds,
            clock=clock,
        )
        self.retry_policy = RetryPolicy(
            ConstantBackoff(max_retries=settings.retry_cap, delay=settings.retry_delay_seconds),
            self.failures,
        )
        self.scheduler = SqliteJobScheduler(conn, clock=clock)
        self.gate = AdmissionGate(
            settings,
            store=self.store,
            repository=self.repository,
            ledger=self.ledger,
            scheduler=self.scheduler,
            mission_log=self.mission_log,
            caller_check=caller_check,
            clock=clock,
        )
        self.executor = DuplicationExecutor(
            settings,
            store=self.store,
            repository=self.repository,
            duplicator=self.duplicator,
            breaker=self.breaker,
            ledger=self.ledger,
            abort_flag=self.abort_flag,
            retry_policy=self.retry_policy,
            scheduler=self.scheduler,
            mission_log=self.mission_log,
            clock=clock,
            sleep=sleep,
        )
        self.health = HealthMonitor(
            settings,
            repository=self.repository,
            failure_counter=self.failures,
            ledger=self.ledger,
            breaker=self.breaker,
            abort_flag=self.abort_flag,
            mission_log=self.mission_log,
            scheduler=self.scheduler,
            clock=clock,
        )

        self.scheduler.register(PROCESS_HOOK, self._process_job)
        self.scheduler.register(HEALTH_HOOK, self._health_job)

    @classmethod
    def from_settings(
        cls,
        settings: MissionSettings | None = None,
        **kwargs: Any,
    ) -> MissionControl:
        """Build against the configured database file, creating ``data_dir``."""
        settings = settings or get_settings()
        try:
            settings.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(
                f"data_dir {settings.data_dir} is not a usable directory",
                context={"data_dir": str(settings.data_dir)},
                cause=e,
            ) from e
        return cls(settings, SqliteConnection(settings.database_path), **kwargs)

    # ── Hooks ────────────────────────────────────────────────────

    def _process_job(self, item_id: int) -> None:
        if not self.settings.active:
            self.mission_log.write(LogCategory.SKIP, f"Mission disabled; item {item_id} not executed")
            return
        self.executor.execute(int(item_id))

    def _health_job(self) -> None:
        self.health.sweep()

    # ── Lifecycle ────────────────────────────────────────────────

    def activate(self) -> dict[str, Any]:
        """Install the recurring health sweep and log diagnostics."""
        self.scheduler.schedule_recurring(HEALTH_HOOK, self.settings.health_interval_seconds)
        self.mission_log.write(LogCategory.CONTROL, f"Mission activated (v{__version__})")
        return self.diagnostics()

    def deactivate(self) -> None:
        """Remove scheduled work and release the breaker. Mission records stay."""
        self.scheduler.clear_recurring(HEALTH_HOOK)
        cancelled = self.scheduler.clear_hook(PROCESS_HOOK)
        self.breaker.release()
        self.mission_log.write(
            LogCategory.CONTROL, f"Mission deactivated; {cancelled} pending jobs cancelled"
        )

    def close(self) -> None:
        close = getattr(self.conn, "close", None)
        if callable(close):
            close()

    # ── Entry points ─────────────────────────────────────────────

    def on_item_created(
        self, item: ContentItem | int, signal: CallerSignal, creating: bool = True
    ) -> AdmissionDecision:
        return self.gate.admit(item, signal, creating)

    def execute(
        self, item_id: int, languages: Iterable[str] | None = None, *, force: bool = False
    ) -> ExecutionOutcome:
        return self.executor.execute(item_id, languages, force=force)

    def run_due(self, now: datetime | None = None) -> DispatchReport:
        return self.scheduler.run_due(now)

    def sweep(self, now: datetime | None = None) -> SweepReport:
        return self.health.sweep(now)

    # ── Operator controls ────────────────────────────────────────

    def abort(self) -> None:
        """Stop running and future missions at the next language boundary."""
        self.abort_flag.set()
        self.mission_log.write(LogCategory.CONTROL, "Abort signal set by operator")

    def reset(self) -> None:
        """Clear the abort flag, the breaker and the failure counter."""
        self.abort_flag.clear()
        self.breaker.release()
        self.failures.clear()
        self.mission_log.write(LogCategory.CONTROL, "Mission state reset by operator")

    def signal(self) -> HealthSignal:
        return self.health.signal()

    def record(self, item_id: int) -> MissionRecord | None:
        return self.repository.get(item_id)

    def diagnostics(self) -> dict[str, Any]:
        """Snapshot of configuration and runtime state, also written to the log."""
        capability = probe_duplicator(self.duplicator)
        data = {
            "version": __version__,
            "time": to_iso8601(self._clock()),
            "database": getattr(self.conn, "path", None),
            "log_file": str(self.mission_log.path),
            "log_writable": self.mission_log.path.parent.is_dir(),
            "duplicator_available": capability.available,
            "duplicator_reason": capability.reason or None,
            "target_languages": list(self.settings.target_languages),
            "max_per_day": self.settings.max_per_day,
            "breaker_timeout": self.settings.breaker_timeout,
            "pending_jobs": len(self.scheduler.pending()),
            "health": self.signal().to_dict(),
        }
        self.mission_log.write(LogCategory.DIAGNOSTICS, json.dumps(data, sort_keys=True))
        return data
