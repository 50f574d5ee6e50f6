"""Tests for fanout.observability.mission_log — audit log and rotation."""

from __future__ import annotations

import os
import time

import pytest

from fanout.observability.mission_log import LogCategory, LogEntry, MissionLog


@pytest.fixture()
def log(tmp_path, clock):
    return MissionLog(tmp_path / "mission-log.txt", max_bytes=200, backups=5, clock=clock)


def _fill(log: MissionLog) -> None:
    while log.size() <= log.max_bytes:
        log.write(LogCategory.INFO, "padding line for rotation")


class TestWrite:
    def test_appends_formatted_line(self, log):
        log.write(LogCategory.SCHEDULED, "Item 42 scheduled")
        log.write("CUSTOM", "free-form category")

        assert log.path.read_text().splitlines() == [
            "[2026-10-19 12:00:00] [SCHEDULED] Item 42 scheduled",
            "[2026-10-19 12:00:00] [CUSTOM] free-form category",
        ]

    def test_returns_entry(self, log):
        entry = log.write(LogCategory.RETRY_SCHEDULED, "retry 1/3")
        assert entry.category == "RETRY-SCHEDULED"
        assert entry.message == "retry 1/3"

    def test_missing_directory_is_not_an_error(self, tmp_path, clock):
        log = MissionLog(tmp_path / "absent" / "log.txt", clock=clock)
        entry = log.write(LogCategory.ERROR, "nowhere to write")
        assert entry.message == "nowhere to write"
        assert not log.path.exists()


class TestParse:
    def test_parses_written_line(self, log):
        log.write(LogCategory.DIAGNOSTICS, '{"a": [1, 2]}')
        [entry] = log.entries()
        assert entry.category == "SYSTEM DIAGNOSTICS"
        assert entry.message == '{"a": [1, 2]}'

    def test_malformed_line_is_none(self):
        assert LogEntry.parse("not a log line") is None
        assert LogEntry.parse("[yesterday] [INFO] bad timestamp") is None

    def test_entries_skip_garbage(self, log):
        log.write(LogCategory.INFO, "first")
        with log.path.open("a") as fh:
            fh.write("garbage\n")
        log.write(LogCategory.INFO, "second")
        assert [e.message for e in log.entries()] == ["first", "second"]

    def test_tail(self, log):
        for i in range(5):
            log.write(LogCategory.INFO, f"line {i}")
        assert [line.rsplit(" ", 1)[-1] for line in log.tail(2)] == ["3", "4"]
        assert MissionLog(log.path.with_name("other.txt")).tail() == []


class TestRotation:
    def test_no_rotation_under_threshold(self, log):
        log.write(LogCategory.INFO, "small")
        assert log.rotate_if_needed() is None
        assert log.backup_files() == []

    def test_rotates_when_over_threshold(self, log):
        _fill(log)
        backup = log.rotate_if_needed()

        assert backup is not None
        assert backup.name == "mission-log.txt.2026-10-19-120000"
        assert backup.stat().st_size > log.max_bytes
        [entry] = log.entries()
        assert entry.category == "MAINTENANCE"
        assert entry.message == f"Log rotated to: {backup.name}"

    def test_same_second_rotations_get_distinct_names(self, log):
        _fill(log)
        first = log.rotate_if_needed()
        _fill(log)
        second = log.rotate_if_needed()
        assert first != second
        assert second.name == f"{first.name}-1"

    def test_keeps_five_most_recent_backups(self, log, clock):
        base = time.time() - 10_000
        created = []
        for k in range(8):
            _fill(log)
            backup = log.rotate_if_needed()
            os.utime(backup, (base + k, base + k))
            created.append(backup)
            clock.advance(1)

        remaining = log.backup_files()
        assert len(remaining) == 5
        assert remaining == created[-5:]
        assert all(not p.exists() for p in created[:3])
