"""Admission gate: may this newly created item be scheduled?

Checks run cheapest first and stop at the first rejection::

    mission-disabled → not-eligible-type → unauthenticated-caller
        → already-processed → already-a-translation → quota-exhausted

A rejected item is left untouched.  An accepted item gets a mission
record and then goes through placement::

    scheduling ──schedule_once(now + delay)──┬── refused ──► schedule-failed
                                             └── placed ───► scheduled
                                                   │
                                    reserve(today) + reconcile
                                                   │
                          lost the race ───────────┴──► quota-exceeded
                          (slot returned, own job cancelled)

The job is placed before the slot is taken so that a slot is never spent
on work the scheduler refused.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable
from datetime import timedelta

from fanout.content.models import CallerSignal, ContentItem
from fanout.content.store import ContentStore
from fanout.core.errors import AdmissionRejected, QuotaRaceOverrun, SchedulingFailed
from fanout.core.logging import get_logger
from fanout.core.settings import MissionSettings
from fanout.core.timestamps import Clock, utc_now
from fanout.execution.models import (
    AdmissionDecision,
    AdmissionReason,
    MissionRecord,
    MissionSnapshot,
    MissionStatus,
)
from fanout.execution.quota import QuotaLedger
from fanout.execution.repository import MissionRepository
from fanout.observability.mission_log import LogCategory, MissionLog
from fanout.scheduling.protocol import JobPayload, JobScheduler

logger = get_logger(__name__)

PROCESS_HOOK = "mission.process"

CallerCheck = Callable[[CallerSignal], bool]

_AUTOMATION_AGENTS = ("Make", "Integromat")
_AUTOMATION_HEADERS = ("x-make-scenario-id", "x-integromat-scenario-id")


def automation_caller_check(signal: CallerSignal) -> bool:
    """True when the request came from the Make/Integromat automation platform."""
    user_agent = signal.user_agent or ""
    if any(agent in user_agent for agent in _AUTOMATION_AGENTS):
        return True
    return any(signal.header(name) for name in _AUTOMATION_HEADERS)


def caller_identity(signal: CallerSignal, salt: str) -> str:
    """Salted HMAC-SHA256 of the caller address, or ``"unknown"``."""
    if not signal.remote_addr:
        return "unknown"
    return hmac.new(salt.encode(), signal.remote_addr.encode(), hashlib.sha256).hexdigest()


class AdmissionGate:
    """Decides whether an inbound item may be scheduled, and schedules it."""

    def __init__(
        self,
        settings: MissionSettings,
        *,
        store: ContentStore,
        repository: MissionRepository,
        ledger: QuotaLedger,
        scheduler: JobScheduler,
        mission_log: MissionLog,
        caller_check: CallerCheck = automation_caller_check,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self._store = store
        self._repo = repository
        self._ledger = ledger
        self._scheduler = scheduler
        self._log = mission_log
        self._caller_check = caller_check
        self._clock = clock

    def _check(self, item: ContentItem, signal: CallerSignal, creating: bool) -> AdmissionReason:
        if not self.settings.active:
            return AdmissionReason.MISSION_DISABLED
        if not creating or item.item_type not in self.settings.eligible_types:
            return AdmissionReason.NOT_ELIGIBLE_TYPE
        if not self._caller_check(signal):
            return AdmissionReason.UNAUTHENTICATED_CALLER
        if self._repo.exists(item.id):
            return AdmissionReason.ALREADY_PROCESSED
        source = item.source_item_id or self._store.translation_source(item.id)
        if source is not None and source != item.id:
            return AdmissionReason.ALREADY_A_TRANSLATION
        if not self._ledger.has_capacity():
            return AdmissionReason.QUOTA_EXHAUSTED
        return AdmissionReason.ACCEPT

    def admit(
        self, item: ContentItem | int, signal: CallerSignal, creating: bool = True
    ) -> AdmissionDecision:
        """Run the admission checks and, on accept, place the job and take a slot."""
        if isinstance(item, int):
            found = self._store.get_item(item)
            if found is None:
                logger.warning("admission_item_missing", item_id=item)
                return AdmissionDecision(
                    item_id=item,
                    reason=AdmissionReason.NOT_ELIGIBLE_TYPE,
                    error=AdmissionRejected("not-eligible-type", f"Item {item} does not exist"),
                )
            item = found

        reason = self._check(item, signal, creating)
        if reason is not AdmissionReason.ACCEPT:
            self._log.write(LogCategory.SKIP, f"Item {item.id} not admitted: {reason.value}")
            return AdmissionDecision(
                item_id=item.id,
                reason=reason,
                error=AdmissionRejected(reason.value, context={"item_id": item.id}),
            )

        return self._place(item, signal)

    def _place(self, item: ContentItem, signal: CallerSignal) -> AdmissionDecision:
        now = self._clock()
        record = MissionRecord(
            item_id=item.id,
            status=MissionStatus.SCHEDULING,
            snapshot=MissionSnapshot(
                title=item.title,
                source_language=item.language
                or self._store.language_of(item.id)
                or self.settings.default_source_language,
                admitted_at=now,
                caller_identity=caller_identity(signal, self.settings.identity_salt),
            ),
        )
        self._repo.save(record)

        payload = JobPayload(hook=PROCESS_HOOK, args={"item_id": item.id})
        not_before = now + timedelta(seconds=self.settings.admission_delay_seconds)
        cause: Exception | None = None
        try:
            handle = self._scheduler.schedule_once(payload, not_before)
        except Exception as e:
            logger.exception("admission_schedule_raised", item_id=item.id)
            handle = None
            cause = e

        if handle is None:
            record.status = MissionStatus.SCHEDULE_FAILED
            self._repo.save(record)
            self._log.write(LogCategory.ERROR, f"Failed to schedule item {item.id}")
            return AdmissionDecision(
                item_id=item.id,
                reason=AdmissionReason.ACCEPT,
                status=record.status,
                error=SchedulingFailed(
                    "Scheduler refused the job", context={"item_id": item.id}, cause=cause
                ),
            )

        record.status = MissionStatus.SCHEDULED
        record.job_id = handle.id
        record.scheduled_at = now
        self._repo.save(record)
        self._log.write(
            LogCategory.SCHEDULED,
            f"Item {item.id} scheduled for duplication at {not_before.strftime('%Y-%m-%d %H:%M:%S')}",
        )

        day = self._ledger.today()
        reserved = self._ledger.reserve(day)
        overrun = reserved and self._ledger.reconcile(day)
        if reserved and not overrun:
            record.quota_day = day
            self._repo.save(record)
            return AdmissionDecision(
                item_id=item.id, reason=AdmissionReason.ACCEPT, status=record.status, job_id=handle.id
            )

        if overrun:
            self._ledger.decrement(day)
        self._scheduler.cancel(handle)
        record.status = MissionStatus.QUOTA_EXCEEDED
        record.job_id = None
        self._repo.save(record)
        self._log.write(
            LogCategory.ABORT,
            f"Daily quota of {self._ledger.max_per_day} reached; item {item.id} cancelled",
        )
        return AdmissionDecision(
            item_id=item.id,
            reason=AdmissionReason.ACCEPT,
            status=record.status,
            error=QuotaRaceOverrun(
                "Daily quota exceeded during reservation",
                context={"item_id": item.id, "day": day.isoformat()},
            ),
        )
