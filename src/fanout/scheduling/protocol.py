"""Job scheduler protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB SCHEDULER PROTOCOL                                                       │
│                                                                               │
│  The mission never sleeps waiting for work.  It asks a scheduler to run a    │
│  payload "once, at or after time T" and returns.  Delivery is               │
│  at-least-once: a job may fire late or twice, so every handler must be       │
│  idempotent (the executor checks the item's status first).                   │
│                                                                               │
│   admission ──schedule_once(mission.process, T+45s)──► JobScheduler          │
│   activate  ──schedule_recurring(mission.health, 1h)──►     │                │
│                                                             │ run_due(now)   │
│   ThreadSchedulerBackend ───────── tick ────────────────────┘                │
│                                                                               │
│  Responsibility split (beat-as-poller):                                      │
│  - Backend: controls WHEN ticks happen                                       │
│  - Scheduler: controls WHAT is due and dispatches it to hook handlers        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

HookHandler = Callable[..., Any]
TickCallback = Callable[[], Any]


@dataclass(frozen=True, slots=True)
class JobPayload:
    """What to run: a registered hook name and its keyword arguments."""

    hook: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class JobHandle:
    """Opaque reference to a scheduled job, used to cancel it."""

    id: str
    hook: str
    not_before: datetime


@runtime_checkable
class JobScheduler(Protocol):
    """Run payloads once at or after a time, or on a fixed interval."""

    def schedule_once(self, payload: JobPayload, not_before: datetime) -> JobHandle | None:
        """Place a one-shot job. Returns None when the scheduler refuses it."""
        ...

    def cancel(self, handle: JobHandle | str) -> bool:
        """Cancel a pending job. Returns True if a pending job was removed."""
        ...

    def schedule_recurring(
        self, name: str, interval_seconds: int, payload: JobPayload | None = None
    ) -> JobHandle | None:
        """Install (or keep) a recurring job keyed by ``name``."""
        ...


@dataclass
class BackendHealth:
    """Structured timing-backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
