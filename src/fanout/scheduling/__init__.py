"""Job scheduling: protocol, SQLite-backed scheduler and a thread ticker."""

from fanout.scheduling.job_scheduler import DispatchReport, SqliteJobScheduler
from fanout.scheduling.protocol import BackendHealth, JobHandle, JobPayload, JobScheduler
from fanout.scheduling.thread_backend import ThreadSchedulerBackend

__all__ = [
    "BackendHealth",
    "DispatchReport",
    "JobHandle",
    "JobPayload",
    "JobScheduler",
    "SqliteJobScheduler",
    "ThreadSchedulerBackend",
]
