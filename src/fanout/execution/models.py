"""Mission lifecycle types.

Status lifecycle::

    (none) ──admit──► scheduling ──placed──► scheduled ──run──► completed
                          │                    │  ▲               already-complete
                          │                    │  │
                          │            failure │  │ rescheduled (count < cap)
                          │                    ▼  │
                          │                   retry ──cap reached──► failed
                          │
                          ├── scheduler refused ──► schedule-failed
                          └── quota lost ────────► quota-exceeded

    scheduled / retry ── older than the staleness window ──► timeout
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from fanout.core.errors import MissionError, PerLanguageFailure
from fanout.core.timestamps import from_iso8601, to_iso8601


class MissionStatus(str, Enum):
    """Per-item mission status."""

    SCHEDULING = "scheduling"
    SCHEDULED = "scheduled"
    RETRY = "retry"
    COMPLETED = "completed"
    ALREADY_COMPLETE = "already-complete"
    QUOTA_EXCEEDED = "quota-exceeded"
    SCHEDULE_FAILED = "schedule-failed"
    TIMEOUT = "timeout"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        MissionStatus.COMPLETED,
        MissionStatus.ALREADY_COMPLETE,
        MissionStatus.QUOTA_EXCEEDED,
        MissionStatus.SCHEDULE_FAILED,
        MissionStatus.TIMEOUT,
        MissionStatus.FAILED,
    }
)

# Awaiting a job firing; the health sweep times these out.
PENDING_STATUSES = frozenset({MissionStatus.SCHEDULED, MissionStatus.RETRY})


@dataclass(frozen=True, slots=True)
class MissionSnapshot:
    """What the item looked like when it was admitted."""

    title: str
    source_language: str
    admitted_at: datetime
    caller_identity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "source_language": self.source_language,
            "admitted_at": to_iso8601(self.admitted_at),
            "caller_identity": self.caller_identity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissionSnapshot:
        return cls(
            title=data.get("title", ""),
            source_language=data.get("source_language", ""),
            admitted_at=from_iso8601(data.get("admitted_at")),
            caller_identity=data.get("caller_identity", "unknown"),
        )


@dataclass
class MissionRecord:
    """Mission state attached to one content item.

    ``results`` maps target language to the new item id in processing
    order.  ``quota_day`` is the day whose slot this record holds; it is
    cleared once the slot is returned so a slot is never returned twice.
    """

    item_id: int
    status: MissionStatus
    snapshot: MissionSnapshot | None = None
    results: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    completed_at: datetime | None = None
    job_id: str | None = None
    scheduled_at: datetime | None = None
    quota_day: date | None = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "status": self.status.value,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "results": dict(self.results),
            "error": self.error,
            "completed_at": to_iso8601(self.completed_at),
            "job_id": self.job_id,
            "scheduled_at": to_iso8601(self.scheduled_at),
            "quota_day": self.quota_day.isoformat() if self.quota_day else None,
            "attempts": self.attempts,
        }


class AdmissionReason(str, Enum):
    """Why the admission gate decided what it did."""

    ACCEPT = "accept"
    MISSION_DISABLED = "mission-disabled"
    NOT_ELIGIBLE_TYPE = "not-eligible-type"
    UNAUTHENTICATED_CALLER = "unauthenticated-caller"
    ALREADY_PROCESSED = "already-processed"
    ALREADY_A_TRANSLATION = "already-a-translation"
    QUOTA_EXHAUSTED = "quota-exhausted"


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    """Result of ``AdmissionGate.admit``.

    ``status`` is the mission status the item ended admission in, or None
    when the item was rejected and left untouched.
    """

    item_id: int
    reason: AdmissionReason
    status: MissionStatus | None = None
    job_id: str | None = None
    error: MissionError | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is AdmissionReason.ACCEPT

    @property
    def scheduled(self) -> bool:
        return self.status is MissionStatus.SCHEDULED

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "reason": self.reason.value,
            "status": self.status.value if self.status else None,
            "job_id": self.job_id,
            "error": self.error.to_dict() if self.error else None,
        }


class ExecutionResult(str, Enum):
    """How one executor invocation ended."""

    COMPLETED = "completed"
    ALREADY_COMPLETE = "already-complete"
    SKIPPED = "skipped"
    REQUEUED = "requeued"
    RETRY_SCHEDULED = "retry-scheduled"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LanguageOutcome:
    """What happened for one target language."""

    language: str
    new_id: int | None = None
    error: PerLanguageFailure | None = None

    @property
    def ok(self) -> bool:
        return self.new_id is not None


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of ``DuplicationExecutor.execute``."""

    item_id: int
    result: ExecutionResult
    status: MissionStatus | None = None
    results: dict[str, int] = field(default_factory=dict)
    languages: tuple[LanguageOutcome, ...] = ()
    error: MissionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.result in (ExecutionResult.COMPLETED, ExecutionResult.ALREADY_COMPLETE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "result": self.result.value,
            "succeeded": self.succeeded,
            "status": self.status.value if self.status else None,
            "results": dict(self.results),
            "languages": [
                {
                    "language": lang.language,
                    "new_id": lang.new_id,
                    "error": lang.error.message if lang.error else None,
                }
                for lang in self.languages
            ],
            "error": self.error.to_dict() if self.error else None,
        }
