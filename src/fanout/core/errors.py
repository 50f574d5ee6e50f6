"""
Structured error types for fanout-core.

Every failure a mission can hit has a typed error carrying a category and
an explicit ``retryable`` flag. Control flow does not depend on raising
them: admission, execution and duplication return result values
(``AdmissionDecision``, ``ExecutionOutcome``, ``DuplicationResult``) that
carry one of these errors when something went wrong. Only unexpected
exceptions are caught, at the executor boundary, and converted into
:class:`ExecutionFailed`.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        MissionError                          │
        │           (category, retryable, context, cause)              │
        ├──────────────────────────────────────────────────────────────┤
        │  AdmissionRejected   QuotaRaceOverrun     BreakerBusy        │
        │  (soft, no retry)    (compensated)        (transient)        │
        │                                                              │
        │  SchedulingFailed    ExecutionFailed      PerLanguageFailure │
        │  (terminal)          (drives retry)       (soft, skipped)    │
        │                           │                                  │
        │                      AbortSignaled       ItemNotFound        │
        │                                                              │
        │  ConfigError                                                 │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise these to steer the state machine
    ✅ DO: Attach them to result values; raise only at API boundaries

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    ADMISSION = "ADMISSION"  # Gate rejections
    QUOTA = "QUOTA"  # Daily quota ledger
    CONCURRENCY = "CONCURRENCY"  # Circuit breaker contention
    SCHEDULING = "SCHEDULING"  # Job scheduler failures
    EXECUTION = "EXECUTION"  # Mission execution failures
    SOURCE = "SOURCE"  # Content store / duplication primitive
    CONFIG = "CONFIG"  # Missing or invalid settings
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


class MissionError(Exception):
    """
    Base exception for all fanout errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MissionError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class AdmissionRejected(MissionError):
    """Inbound item refused by the admission gate. Logged, never retried."""

    default_category = ErrorCategory.ADMISSION

    def __init__(self, reason: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Admission rejected: {reason}", **kwargs)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason
        return result


class QuotaRaceOverrun(MissionError):
    """An optimistic quota reservation pushed the day past its limit."""

    default_category = ErrorCategory.QUOTA


class BreakerBusy(MissionError):
    """Another mission holds the execution breaker. Transient."""

    default_category = ErrorCategory.CONCURRENCY
    default_retryable = True


class SchedulingFailed(MissionError):
    """The job scheduler refused the job. Terminal for the mission."""

    default_category = ErrorCategory.SCHEDULING


class ExecutionFailed(MissionError):
    """A mission execution failed; drives the retry policy."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = True


class AbortSignaled(ExecutionFailed):
    """The operator abort flag was observed between languages."""

    def __init__(self, message: str = "Mission abort signal received", **kwargs: Any):
        super().__init__(message, **kwargs)


class ItemNotFound(ExecutionFailed):
    """The content item vanished between admission and execution."""

    default_category = ErrorCategory.SOURCE

    def __init__(self, item_id: int, **kwargs: Any):
        super().__init__(f"Item {item_id} no longer exists", **kwargs)
        self.item_id = item_id


class PerLanguageFailure(MissionError):
    """A single target language could not be produced. Soft, skipped."""

    default_category = ErrorCategory.SOURCE

    def __init__(self, language: str, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.language = language


class ConfigError(MissionError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


def is_retryable(error: Exception) -> bool:
    """Check whether an error should drive a retry."""
    if isinstance(error, MissionError):
        return error.retryable
    return True


__all__ = [
    "ErrorCategory",
    "MissionError",
    "AdmissionRejected",
    "QuotaRaceOverrun",
    "BreakerBusy",
    "SchedulingFailed",
    "ExecutionFailed",
    "AbortSignaled",
    "ItemNotFound",
    "PerLanguageFailure",
    "ConfigError",
    "is_retryable",
]
