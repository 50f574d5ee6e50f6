"""Append-only mission log with size-triggered rotation.

The mission log is the audit trail operators read when something goes
wrong.  Every component writes one line per event::

    [2026-10-19 08:15:02] [SCHEDULED] Item 42 scheduled for duplication

Rotation:
    When the active file grows past ``max_bytes`` it is renamed to
    ``<name>.<YYYY-mm-dd-HHMMSS>`` and a fresh active file is started.
    Only the ``backups`` most recently modified rotated files are kept.

Each entry is also mirrored to structlog so process logs and the audit
file agree.
"""

from __future__ import annotations

import os
import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from fanout.core.logging import get_logger
from fanout.core.timestamps import Clock, utc_now

logger = get_logger("fanout.mission")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
ROTATION_SUFFIX_FORMAT = "%Y-%m-%d-%H%M%S"

_LINE_RE = re.compile(r"^\[(?P<ts>[^\]]+)\] \[(?P<cat>[^\]]+)\] (?P<msg>.*)$")


class LogCategory(str, Enum):
    """Categories written to the mission log."""

    DIAGNOSTICS = "SYSTEM DIAGNOSTICS"
    SCHEDULED = "SCHEDULED"
    SKIP = "SKIP"
    ABORT = "ABORT"
    EXECUTE = "EXECUTE"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARN = "WARN"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    RETRY_SCHEDULED = "RETRY-SCHEDULED"
    HEALTH = "HEALTH"
    MAINTENANCE = "MAINTENANCE"
    CONTROL = "CONTROL"


_SEVERITY = {
    LogCategory.CRITICAL: "critical",
    LogCategory.ERROR: "error",
    LogCategory.WARN: "warning",
    LogCategory.ABORT: "warning",
}


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One immutable mission log line."""

    timestamp: datetime
    category: str
    message: str

    def format(self) -> str:
        return f"[{self.timestamp.strftime(TIMESTAMP_FORMAT)}] [{self.category}] {self.message}"

    @classmethod
    def parse(cls, line: str) -> LogEntry | None:
        """Parse a formatted line; returns None for anything malformed."""
        match = _LINE_RE.match(line.rstrip("\n"))
        if match is None:
            return None
        try:
            ts = datetime.strptime(match.group("ts"), TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return cls(timestamp=ts, category=match.group("cat"), message=match.group("msg"))


class MissionLog:
    """Append-only log file with bounded rotation.

    Attributes:
        path: Active log file
        max_bytes: Rotate once the active file is strictly larger than this
        backups: Rotated files to retain
    """

    def __init__(
        self,
        path: Path | str,
        *,
        max_bytes: int = 5 * 1024 * 1024,
        backups: int = 5,
        clock: Clock = utc_now,
    ) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.backups = backups
        self._clock = clock

    def write(self, category: LogCategory | str, message: str) -> LogEntry:
        """Append one entry and mirror it to structlog."""
        cat = category.value if isinstance(category, LogCategory) else str(category)
        entry = LogEntry(timestamp=self._clock(), category=cat, message=message)
        level = _SEVERITY.get(cat, "info")

        if not self.path.parent.is_dir():
            getattr(logger, level)(
                "mission_log", category=cat, message=message, log_directory_unavailable=True
            )
            return entry

        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(entry.format() + "\n")
        getattr(logger, level)("mission_log", category=cat, message=message)
        return entry

    # ── Rotation ─────────────────────────────────────────────────

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def backup_files(self) -> list[Path]:
        """Rotated files, oldest modification first."""
        if not self.path.parent.is_dir():
            return []
        files = [p for p in self.path.parent.glob(f"{self.path.name}.*") if p.is_file()]
        return sorted(files, key=lambda p: (p.stat().st_mtime, p.name))

    def _backup_name(self) -> Path:
        stamp = self._clock().strftime(ROTATION_SUFFIX_FORMAT)
        candidate = self.path.with_name(f"{self.path.name}.{stamp}")
        counter = 1
        while candidate.exists():
            candidate = self.path.with_name(f"{self.path.name}.{stamp}-{counter}")
            counter += 1
        return candidate

    def rotate_if_needed(self) -> Path | None:
        """Rotate when the active file exceeds ``max_bytes``.

        Returns:
            Path of the new backup, or None when no rotation happened
        """
        if not self.path.exists() or self.size() <= self.max_bytes:
            return None

        backup = self._backup_name()
        os.replace(self.path, backup)
        self.path.touch()
        self.write(LogCategory.MAINTENANCE, f"Log rotated to: {backup.name}")
        self.prune_backups()
        return backup

    def prune_backups(self) -> list[Path]:
        """Delete the oldest backups beyond the retention count."""
        files = self.backup_files()
        excess = files[: max(len(files) - self.backups, 0)]
        for old in excess:
            old.unlink(missing_ok=True)
        if excess:
            logger.info("mission_log_pruned", removed=[p.name for p in excess])
        return excess

    # ── Reading ──────────────────────────────────────────────────

    def tail(self, lines: int = 50) -> list[str]:
        """Last ``lines`` raw lines of the active file."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as fh:
            return [line.rstrip("\n") for line in deque(fh, maxlen=lines)]

    def entries(self) -> list[LogEntry]:
        """Parsed entries of the active file (malformed lines skipped)."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as fh:
            parsed = (LogEntry.parse(line) for line in fh)
            return [entry for entry in parsed if entry is not None]

