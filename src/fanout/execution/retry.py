"""Bounded retry with a decaying failure counter.

The counter is global (not per item): a burst of failures anywhere slows
every mission down until an hour passes without failures and the health
sweep resets it.

Example:
    >>> policy = RetryPolicy(ConstantBackoff(max_retries=3, delay=300), counter)
    >>> decision = policy.record_failure(ExecutionFailed("boom"))
    >>> decision.retry, decision.delay
    (True, 300.0)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fanout.core.errors import is_retryable
from fanout.core.logging import get_logger
from fanout.core.state import StateStore
from fanout.core.timestamps import Clock, from_iso8601, to_iso8601, utc_now

logger = get_logger(__name__)

FAILURE_COUNT_KEY = "failure_count"
LAST_FAILURE_KEY = "last_failure"


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds before retry ``attempt`` (zero-based)."""
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Whether retry ``attempt`` may be scheduled."""
        ...


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries."""

    max_retries: int = 3
    delay: float = 300.0

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if error is not None and not is_retryable(error):
            return False
        return attempt < self.max_retries


class FailureCounter:
    """Persisted ``{count, last_failure_at}`` with independent expiries."""

    def __init__(
        self,
        state: StateStore,
        *,
        count_ttl_seconds: int = 3600,
        last_failure_ttl_seconds: int = 86400,
        clock: Clock = utc_now,
    ) -> None:
        self._state = state
        self.count_ttl_seconds = count_ttl_seconds
        self.last_failure_ttl_seconds = last_failure_ttl_seconds
        self._clock = clock

    def count(self) -> int:
        return int(self._state.get(FAILURE_COUNT_KEY, 0) or 0)

    def last_failure_at(self) -> datetime | None:
        return from_iso8601(self._state.get(LAST_FAILURE_KEY))

    def record(self) -> int:
        """Count one failure. Returns the count before this failure."""
        new_count = self._state.increment(FAILURE_COUNT_KEY, ttl_seconds=self.count_ttl_seconds)
        self._state.set(
            LAST_FAILURE_KEY, to_iso8601(self._clock()), ttl_seconds=self.last_failure_ttl_seconds
        )
        return new_count - 1

    def clear(self) -> None:
        self._state.delete(FAILURE_COUNT_KEY, LAST_FAILURE_KEY)

    def decay(self, decay_seconds: int, now: datetime | None = None) -> bool:
        """Reset when the last failure is older than ``decay_seconds``."""
        last = self.last_failure_at()
        if last is None:
            return False
        now = now or self._clock()
        if now - last <= timedelta(seconds=decay_seconds):
            return False
        self.clear()
        logger.info("failure_counter_decayed", last_failure_at=last.isoformat())
        return True


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """What to do after a failed execution."""

    retry: bool
    attempt: int
    delay: float
    max_retries: int

    @property
    def failure_count(self) -> int:
        return self.attempt + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "retry": self.retry,
            "attempt": self.attempt,
            "delay": self.delay,
            "max_retries": self.max_retries,
        }


class RetryPolicy:
    """Records a failure and decides whether to reschedule."""

    def __init__(self, strategy: ConstantBackoff, counter: FailureCounter) -> None:
        self.strategy = strategy
        self.counter = counter

    def record_failure(self, error: Exception | None = None) -> RetryDecision:
        attempt = self.counter.record()
        retry = self.strategy.should_retry(attempt, error)
        decision = RetryDecision(
            retry=retry,
            attempt=attempt,
            delay=self.strategy.next_delay(attempt) if retry else 0.0,
            max_retries=self.strategy.max_retries,
        )
        logger.info("retry_decision", **decision.to_dict())
        return decision
