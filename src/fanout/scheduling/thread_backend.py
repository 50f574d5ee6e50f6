"""Threading-based ticker for the job scheduler.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ThreadSchedulerBackend                                                       │
│                                                                               │
│   start(tick, interval)                                                       │
│      └── daemon thread:                                                       │
│             while not stop_event.wait(interval):                              │
│                 tick_count += 1; last_tick = now()                            │
│                 tick()          # e.g. scheduler.run_due                      │
│                                                                               │
│   stop()  →  stop_event.set(); thread.join(timeout=5.0)                       │
└──────────────────────────────────────────────────────────────────────────────┘

The tick is synchronous: ``run_due`` and the executor block on the pacing
delay anyway, and the persisted breaker is what serializes executions.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from fanout.core.logging import get_logger
from fanout.core.timestamps import utc_now
from fanout.scheduling.protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Calls a tick callback on a fixed interval from a daemon thread.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(scheduler.run_due, interval_seconds=5.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 10.0
        self._started = False
        self._lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 10.0) -> None:
        """Start ticking in a daemon thread. A second call is a no-op."""
        if self._started:
            logger.warning("scheduler_backend_already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("scheduler_backend_started", backend=self.name, interval_seconds=interval_seconds)
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = utc_now()
                try:
                    tick_callback()
                except Exception:
                    logger.exception("scheduler_tick_failed", backend=self.name)
            logger.info("scheduler_backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name="fanout-scheduler")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop ticking, waiting up to 5 seconds for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("scheduler_thread_not_stopped", backend=self.name)

        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval},
        )
