"""Mission audit log."""

from fanout.observability.mission_log import LogCategory, LogEntry, MissionLog

__all__ = ["LogCategory", "LogEntry", "MissionLog"]
