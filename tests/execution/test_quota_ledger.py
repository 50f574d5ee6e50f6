"""Tests for fanout.execution.quota — daily counters with reconcile and rollback."""

from __future__ import annotations

import sqlite3
from datetime import UTC, date, datetime

import pytest

from fanout.execution.quota import QuotaLedger
from fanout.observability.mission_log import MissionLog


@pytest.fixture()
def ledger(conn, clock, sleeps):
    return QuotaLedger(conn, max_per_day=3, clock=clock, sleep=sleeps.append)


TODAY = date(2026, 10, 19)


class TestReserve:
    def test_counts_per_day(self, ledger):
        assert ledger.today() == TODAY
        assert ledger.reserve()
        assert ledger.reserve(TODAY)
        assert ledger.count() == 2
        assert ledger.count(date(2026, 10, 20)) == 0

    def test_atomic_refuses_past_limit(self, ledger):
        for _ in range(3):
            assert ledger.reserve()
        assert not ledger.has_capacity()
        assert ledger.reserve() is False
        assert ledger.count() == 3

    def test_optimistic_overruns_then_reconciles(self, conn, clock):
        ledger = QuotaLedger(conn, max_per_day=1, atomic=False, clock=clock)
        assert ledger.reserve()
        assert not ledger.reconcile()
        assert ledger.reserve()
        assert ledger.reconcile() is True
        assert ledger.decrement() == 1
        assert not ledger.reconcile()


class TestContention:
    class LockedConnection:
        """Raises 'database is locked' on the first ``failures`` quota updates."""

        def __init__(self, inner, failures):
            self.inner = inner
            self.failures = failures

        def execute(self, sql, params=()):
            if "UPDATE mission_quota SET count = count + 1" in sql and self.failures:
                self.failures -= 1
                raise sqlite3.OperationalError("database is locked")
            return self.inner.execute(sql, params)

        def __getattr__(self, name):
            return getattr(self.inner, name)

    def test_retries_with_backoff(self, conn, clock, sleeps):
        ledger = QuotaLedger(
            self.LockedConnection(conn, failures=2), clock=clock, sleep=sleeps.append
        )
        assert ledger.reserve() is True
        assert sleeps == [0.05, 0.05]
        assert ledger.count() == 1

    def test_gives_up_after_attempts_and_logs_error(self, conn, clock, sleeps, tmp_path):
        log = MissionLog(tmp_path / "mission-log.txt", clock=clock)
        ledger = QuotaLedger(
            self.LockedConnection(conn, failures=100),
            attempts=10,
            mission_log=log,
            clock=clock,
            sleep=sleeps.append,
        )
        assert ledger.reserve() is False
        assert len(sleeps) == 10
        [entry] = log.entries()
        assert entry.category == "ERROR"
        assert "after 10 attempts" in entry.message


class TestDecrement:
    def test_floor_at_zero(self, ledger):
        assert ledger.decrement() == 0
        ledger.reserve()
        assert ledger.decrement() == 0
        assert ledger.decrement() == 0


class TestPrune:
    def test_removes_counters_past_retention(self, conn, ledger):
        for day in ("2026-10-16", "2026-10-17", "2026-10-18"):
            conn.execute(
                "INSERT INTO mission_quota (day, count, updated_at) VALUES (?, 5, 'x')", (day,)
            )
        conn.commit()

        assert ledger.prune() == 2
        assert ledger.count(date(2026, 10, 18)) == 5
        assert ledger.count(date(2026, 10, 17)) == 0

    def test_reserve_prunes(self, conn, ledger):
        conn.execute("INSERT INTO mission_quota (day, count, updated_at) VALUES ('2026-01-01', 9, 'x')")
        conn.commit()
        ledger.reserve()
        assert ledger.count(date(2026, 1, 1)) == 0


class TestTimezone:
    def test_today_follows_configured_zone(self, conn):
        ledger = QuotaLedger(
            conn,
            timezone="America/New_York",
            clock=lambda: datetime(2026, 10, 19, 2, 0, tzinfo=UTC),
        )
        assert ledger.today() == date(2026, 10, 18)
