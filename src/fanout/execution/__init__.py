"""Mission lifecycle: admission, quota, breaker, retry, execution and health."""

from fanout.execution.abort import AbortFlag
from fanout.execution.admission import (
    PROCESS_HOOK,
    AdmissionGate,
    CallerCheck,
    automation_caller_check,
    caller_identity,
)
from fanout.execution.circuit_breaker import BreakerState, ExecutionBreaker
from fanout.execution.executor import DuplicationExecutor
from fanout.execution.health import HealthMonitor, HealthSignal, SweepReport
from fanout.execution.models import (
    TERMINAL_STATUSES,
    AdmissionDecision,
    AdmissionReason,
    ExecutionOutcome,
    ExecutionResult,
    LanguageOutcome,
    MissionRecord,
    MissionSnapshot,
    MissionStatus,
)
from fanout.execution.quota import QuotaLedger
from fanout.execution.repository import MissionRepository
from fanout.execution.retry import (
    ConstantBackoff,
    FailureCounter,
    RetryDecision,
    RetryPolicy,
    RetryStrategy,
)

__all__ = [
    "PROCESS_HOOK",
    "TERMINAL_STATUSES",
    "AbortFlag",
    "AdmissionDecision",
    "AdmissionGate",
    "AdmissionReason",
    "BreakerState",
    "CallerCheck",
    "ConstantBackoff",
    "DuplicationExecutor",
    "ExecutionBreaker",
    "ExecutionOutcome",
    "ExecutionResult",
    "FailureCounter",
    "HealthMonitor",
    "HealthSignal",
    "LanguageOutcome",
    "MissionRecord",
    "MissionRepository",
    "MissionSnapshot",
    "MissionStatus",
    "QuotaLedger",
    "RetryDecision",
    "RetryPolicy",
    "RetryStrategy",
    "SweepReport",
    "automation_caller_check",
    "caller_identity",
]
