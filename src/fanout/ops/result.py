"""
Operation result envelope.

Every operator function returns an :class:`OperationResult` so the CLI
(and anything else driving the mission by hand) renders success and
failure the same way.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from fanout.core.errors import ErrorCategory, MissionError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class OperationError:
    """Structured error detail for failed operations.

    Attributes:
        code: Machine-readable code (``NOT_FOUND``, ``MISSION_FAILED``, …).
        message: Human-readable description of the error.
        category: Optional :class:`ErrorCategory` for routing.
        details: Extra key/value context.
        retryable: Whether the caller should retry the operation.
    """

    code: str
    message: str
    category: ErrorCategory | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class OperationResult(Generic[T]):
    """Envelope returned by every operation function.

    Use :meth:`ok` and :meth:`fail` rather than the constructor.
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data, warnings=warnings or [], elapsed_ms=elapsed_ms)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        data: T | None = None,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        """Create a failed result."""
        return cls(
            success=False,
            data=data,
            error=OperationError(
                code=code,
                message=message,
                category=category,
                details=details or {},
                retryable=retryable,
            ),
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def from_error(
        cls, code: str, error: MissionError, *, data: T | None = None, elapsed_ms: float = 0.0
    ) -> OperationResult[T]:
        """Failed result carrying a :class:`MissionError`."""
        return cls.fail(
            code,
            error.message,
            category=error.category,
            details=dict(error.context),
            retryable=error.retryable,
            data=data,
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (for JSON output)."""
        d: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data
        if self.error is not None:
            d["error"] = {
                "code": self.error.code,
                "message": self.error.message,
                "retryable": self.error.retryable,
            }
            if self.error.details:
                d["error"]["details"] = self.error.details
        if self.warnings:
            d["warnings"] = self.warnings
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        return d


class _Timer:
    """Minimal stopwatch for timing operations."""

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> _Timer:
    """Return a lightweight timer.  Use ``timer.elapsed_ms`` when done."""
    return _Timer()
