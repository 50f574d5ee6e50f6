"""
Operator operations: manual runs, abort/reset, status, sweep and log access.

Each function wraps one :class:`~fanout.control.MissionControl` call in an
:class:`OperationResult`.  Abort and reset are idempotent.
"""

from __future__ import annotations

from typing import Any

from fanout.core.errors import ErrorCategory
from fanout.core.logging import get_logger
from fanout.execution.models import ExecutionResult
from fanout.ops.context import OperationContext
from fanout.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def duplicate_item(
    ctx: OperationContext,
    item_id: int,
    languages: list[str] | None = None,
    *,
    force: bool = False,
) -> OperationResult[dict[str, Any]]:
    """Run the executor for one item right now, outside the daily quota."""
    timer = start_timer()
    control = ctx.control

    if control.store.get_item(item_id) is None:
        return OperationResult.fail(
            "NOT_FOUND",
            f"Item {item_id} does not exist",
            category=ErrorCategory.SOURCE,
            elapsed_ms=timer.elapsed_ms,
        )

    logger.info("manual_duplicate", item_id=item_id, languages=languages, force=force, caller=ctx.caller)
    outcome = control.execute(item_id, languages, force=force)
    data = outcome.to_dict()
    if outcome.result in (ExecutionResult.FAILED, ExecutionResult.RETRY_SCHEDULED) and outcome.error:
        return OperationResult.from_error("MISSION_FAILED", outcome.error, data=data, elapsed_ms=timer.elapsed_ms)

    warnings = [f"{lang.language}: {lang.error.message}" for lang in outcome.languages if lang.error]
    if outcome.result is ExecutionResult.SKIPPED:
        warnings.append("item already processed; use --force to run again")
    elif outcome.result is ExecutionResult.REQUEUED:
        warnings.append("another mission holds the breaker; item requeued")
    return OperationResult.ok(data, warnings=warnings, elapsed_ms=timer.elapsed_ms)


def abort_missions(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Set the global abort flag."""
    timer = start_timer()
    was_set = ctx.control.abort_flag.is_set()
    ctx.control.abort()
    return OperationResult.ok({"abort": True, "already_set": was_set}, elapsed_ms=timer.elapsed_ms)


def reset_missions(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Clear the abort flag, the breaker and the failure counter."""
    timer = start_timer()
    before = ctx.control.signal()
    ctx.control.reset()
    return OperationResult.ok(
        {
            "abort_cleared": before.abort,
            "breaker_released": before.breaker is not None,
            "failures_cleared": before.failure_count,
        },
        elapsed_ms=timer.elapsed_ms,
    )


def get_status(ctx: OperationContext, item_id: int | None = None) -> OperationResult[dict[str, Any]]:
    """Aggregate health signal, or one item's mission record."""
    timer = start_timer()
    if item_id is None:
        return OperationResult.ok(ctx.control.signal().to_dict(), elapsed_ms=timer.elapsed_ms)

    record = ctx.control.record(item_id)
    if record is None:
        return OperationResult.fail(
            "NOT_FOUND",
            f"Item {item_id} has no mission record",
            category=ErrorCategory.SOURCE,
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(record.to_dict(), elapsed_ms=timer.elapsed_ms)


def run_sweep(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Run the health sweep once."""
    timer = start_timer()
    report = ctx.control.sweep()
    return OperationResult.ok(report.to_dict(), elapsed_ms=timer.elapsed_ms)


def run_due_jobs(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Dispatch every job whose time has come."""
    timer = start_timer()
    report = ctx.control.run_due()
    warnings = [f"job {job_id} failed" for job_id in report.failed]
    return OperationResult.ok(report.to_dict(), warnings=warnings, elapsed_ms=timer.elapsed_ms)


def read_log(ctx: OperationContext, lines: int = 50) -> OperationResult[list[str]]:
    """Last ``lines`` lines of the mission log."""
    timer = start_timer()
    return OperationResult.ok(ctx.control.mission_log.tail(lines), elapsed_ms=timer.elapsed_ms)


def get_diagnostics(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Configuration and runtime snapshot (also written to the mission log)."""
    timer = start_timer()
    return OperationResult.ok(ctx.control.diagnostics(), elapsed_ms=timer.elapsed_ms)
