"""Duplication executor: drives one item from a fired job to a final status.

Flow::

    execute(item_id)
        │
        ├── terminal status? ──────────────────────────► SKIP (no side effects)
        ├── breaker busy? ─── requeue in 5 min ────────► ABORT (not a failure)
        │
        └── [breaker held]
              ├── item gone ───────────────────────────► failure
              ├── no targets left ─────────────────────► already-complete
              ├── for each target language:
              │     pace, poll abort flag, duplicate, validate the new id
              ├── abort flag / exception ──────────────► failure
              └── loop finished ───────────────────────► completed
            [breaker released]

    failure ── slot returned ── RetryPolicy ──┬── retry (rescheduled)
                                              └── failed (cap reached)

Per-language problems (primitive unavailable, refused, bogus id) are soft:
logged as ``WARN`` and skipped.  Only the abort flag or an exception fails
the whole mission.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import timedelta

from fanout.content.duplicator import Duplicator, probe_duplicator
from fanout.content.models import DuplicationStatus, DuplicatorCapability
from fanout.content.store import ContentStore
from fanout.core.errors import (
    AbortSignaled,
    BreakerBusy,
    ExecutionFailed,
    ItemNotFound,
    MissionError,
    PerLanguageFailure,
)
from fanout.core.logging import LogContext, get_logger
from fanout.core.settings import MissionSettings
from fanout.core.timestamps import Clock, utc_now
from fanout.execution.abort import AbortFlag
from fanout.execution.admission import PROCESS_HOOK
from fanout.execution.circuit_breaker import ExecutionBreaker
from fanout.execution.models import (
    ExecutionOutcome,
    ExecutionResult,
    LanguageOutcome,
    MissionRecord,
    MissionStatus,
)
from fanout.execution.quota import QuotaLedger
from fanout.execution.repository import MissionRepository
from fanout.execution.retry import RetryPolicy
from fanout.observability.mission_log import LogCategory, MissionLog
from fanout.scheduling.protocol import JobPayload, JobScheduler

logger = get_logger(__name__)


class DuplicationExecutor:
    """Runs the fan-out for one item under the execution breaker."""

    def __init__(
        self,
        settings: MissionSettings,
        *,
        store: ContentStore,
        repository: MissionRepository,
        duplicator: Duplicator | None,
        breaker: ExecutionBreaker,
        ledger: QuotaLedger,
        abort_flag: AbortFlag,
        retry_policy: RetryPolicy,
        scheduler: JobScheduler,
        mission_log: MissionLog,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._store = store
        self._repo = repository
        self._duplicator = duplicator
        self._breaker = breaker
        self._ledger = ledger
        self._abort = abort_flag
        self._retry = retry_policy
        self._scheduler = scheduler
        self._log = mission_log
        self._clock = clock
        self._sleep = sleep

    def execute(
        self,
        item_id: int,
        languages: Iterable[str] | None = None,
        *,
        force: bool = False,
    ) -> ExecutionOutcome:
        """Fan ``item_id`` out into its missing target languages.

        Args:
            item_id: Source content item
            languages: Override the configured target list (manual runs)
            force: Run even when the item already reached a terminal status
        """
        with LogContext(item_id=item_id):
            record = self._repo.get(item_id)
            if record is not None and record.is_terminal and not force:
                return self._skip(item_id, record)

            if not self._breaker.acquire(item_id, self.settings.breaker_timeout):
                return self._requeue(item_id, record)

            try:
                # Another delivery may have finished the item while we waited for the breaker.
                record = self._repo.get(item_id)
                if record is not None and record.is_terminal and not force:
                    return self._skip(item_id, record)
                try:
                    return self._run(item_id, record, languages)
                except Exception as e:
                    logger.exception("mission_raised", item_id=item_id)
                    error = e if isinstance(e, MissionError) else ExecutionFailed(str(e), cause=e)
                    return self._fail(item_id, self._repo.get(item_id), error)
            finally:
                self._breaker.release()

    def _skip(self, item_id: int, record: MissionRecord) -> ExecutionOutcome:
        self._log.write(
            LogCategory.SKIP,
            f"Item {item_id} already processed (status: {record.status.value})",
        )
        return ExecutionOutcome(
            item_id=item_id,
            result=ExecutionResult.SKIPPED,
            status=record.status,
            results=dict(record.results),
        )

    # ── Breaker busy ─────────────────────────────────────────────

    def _requeue(self, item_id: int, record: MissionRecord | None) -> ExecutionOutcome:
        holder = self._breaker.holder()
        now = self._clock()
        delay = self.settings.busy_requeue_delay_seconds
        handle = self._scheduler.schedule_once(
            JobPayload(hook=PROCESS_HOOK, args={"item_id": item_id}),
            now + timedelta(seconds=delay),
        )
        if record is not None and handle is not None:
            record.job_id = handle.id
            record.scheduled_at = now
            self._repo.save(record)

        owner = holder.owner_item_id if holder else "unknown"
        message = f"Mission busy with item {owner}; item {item_id} rescheduled in {delay}s"
        self._log.write(LogCategory.ABORT, message)
        return ExecutionOutcome(
            item_id=item_id,
            result=ExecutionResult.REQUEUED,
            status=record.status if record else None,
            error=BreakerBusy(message, context={"item_id": item_id, "holder": owner}),
        )

    # ── Main run ─────────────────────────────────────────────────

    def _run(
        self, item_id: int, record: MissionRecord | None, languages: Iterable[str] | None
    ) -> ExecutionOutcome:
        item = self._store.get_item(item_id)
        if item is None:
            return self._fail(item_id, record, ItemNotFound(item_id))

        if record is None:
            record = MissionRecord(item_id=item_id, status=MissionStatus.SCHEDULED)
        record.attempts += 1
        if record.job_id:
            # A manual run supersedes whatever job was still waiting.
            self._scheduler.cancel(record.job_id)
        record.job_id = None
        # Marks executor activity so the health sweep does not treat a late run as stale.
        record.scheduled_at = self._clock()
        self._repo.save(record)

        source = self._store.language_of(item_id) or self.settings.default_source_language
        existing = self._store.translations(item_id)
        wanted = list(languages) if languages is not None else list(self.settings.target_languages)
        targets = [lang for lang in dict.fromkeys(wanted) if lang != source and lang not in existing]

        self._log.write(
            LogCategory.EXECUTE,
            f"Starting duplication for item {item_id} ({source} → {', '.join(targets) or 'none'})",
        )

        if not targets:
            record.status = MissionStatus.ALREADY_COMPLETE
            record.error = None
            self._repo.save(record)
            self._log.write(LogCategory.INFO, f"Item {item_id} already has every target language")
            return ExecutionOutcome(
                item_id=item_id,
                result=ExecutionResult.ALREADY_COMPLETE,
                status=record.status,
                results=dict(record.results),
            )

        capability = probe_duplicator(self._duplicator)
        if not capability.available:
            logger.warning("duplicator_unavailable", reason=capability.reason)

        outcomes: list[LanguageOutcome] = []
        for index, language in enumerate(targets):
            if index:
                self._sleep(self.settings.pacing_delay_seconds)
            if self._abort.is_set():
                return self._fail(item_id, record, AbortSignaled(), outcomes)

            outcome = self._duplicate_one(item_id, language, capability, record)
            outcomes.append(outcome)
            if outcome.ok:
                record.results[language] = outcome.new_id
                self._repo.save(record)

        now = self._clock()
        record.status = MissionStatus.COMPLETED
        record.completed_at = now
        record.error = None
        self._repo.save(record)

        created = sum(1 for outcome in outcomes if outcome.ok)
        self._log.write(
            LogCategory.COMPLETE,
            f"Item {item_id} complete: {created}/{len(targets)} languages created",
        )
        return ExecutionOutcome(
            item_id=item_id,
            result=ExecutionResult.COMPLETED,
            status=record.status,
            results=dict(record.results),
            languages=tuple(outcomes),
        )

    def _duplicate_one(
        self,
        item_id: int,
        language: str,
        capability: DuplicatorCapability,
        record: MissionRecord,
    ) -> LanguageOutcome:
        if not capability.available:
            self._log.write(LogCategory.WARN, f"Duplication unavailable for {language}: {capability.reason}")
            return LanguageOutcome(language, error=PerLanguageFailure(language, capability.reason))

        result = self._duplicator.duplicate(item_id, language)
        if result.status is not DuplicationStatus.CREATED:
            message = result.message or result.status.value
            self._log.write(LogCategory.WARN, f"Failed to create {language} for item {item_id}: {message}")
            return LanguageOutcome(language, error=PerLanguageFailure(language, message))

        new_id = result.new_id
        valid = (
            isinstance(new_id, int)
            and not isinstance(new_id, bool)
            and new_id > 0
            and new_id != item_id
            and new_id not in record.results.values()
        )
        if not valid:
            message = f"invalid new item id {new_id!r}"
            self._log.write(LogCategory.WARN, f"Failed to create {language} for item {item_id}: {message}")
            return LanguageOutcome(language, error=PerLanguageFailure(language, message))

        # The copy inherits the source's meta; it must not look like a mission item.
        self._repo.clear(new_id)
        self._log.write(LogCategory.SUCCESS, f"Created {language} item {new_id} from item {item_id}")
        return LanguageOutcome(language, new_id=new_id)

    # ── Failure accounting ───────────────────────────────────────

    def _fail(
        self,
        item_id: int,
        record: MissionRecord | None,
        error: MissionError,
        outcomes: Iterable[LanguageOutcome] = (),
    ) -> ExecutionOutcome:
        now = self._clock()
        record = record or MissionRecord(item_id=item_id, status=MissionStatus.SCHEDULED)
        self._log.write(LogCategory.ERROR, f"Mission failed for item {item_id}: {error.message}")

        if record.quota_day is not None:
            self._ledger.decrement(record.quota_day)
            record.quota_day = None

        decision = self._retry.record_failure(error)
        record.error = error.message
        record.job_id = None

        if decision.retry:
            handle = self._scheduler.schedule_once(
                JobPayload(hook=PROCESS_HOOK, args={"item_id": item_id}),
                now + timedelta(seconds=decision.delay),
            )
            if handle is not None:
                record.status = MissionStatus.RETRY
                record.job_id = handle.id
                record.scheduled_at = now
                self._repo.save(record)
                self._log.write(
                    LogCategory.RETRY_SCHEDULED,
                    f"Item {item_id} retry {decision.failure_count}/{decision.max_retries} "
                    f"in {int(decision.delay)}s",
                )
                return ExecutionOutcome(
                    item_id=item_id,
                    result=ExecutionResult.RETRY_SCHEDULED,
                    status=record.status,
                    results=dict(record.results),
                    languages=tuple(outcomes),
                    error=error,
                )
            self._log.write(LogCategory.ERROR, f"Could not reschedule item {item_id}")

        record.status = MissionStatus.FAILED
        record.completed_at = now
        self._repo.save(record)
        self._log.write(
            LogCategory.CRITICAL,
            f"Item {item_id} failed permanently after {decision.failure_count} consecutive failures: "
            f"{error.message}",
        )
        return ExecutionOutcome(
            item_id=item_id,
            result=ExecutionResult.FAILED,
            status=record.status,
            results=dict(record.results),
            languages=tuple(outcomes),
            error=error,
        )
