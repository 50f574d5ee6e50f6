"""Tests for fanout.execution.circuit_breaker — single-flight execution lock."""

from __future__ import annotations

import pytest

from fanout.execution.circuit_breaker import ExecutionBreaker


@pytest.fixture()
def breaker(conn, clock):
    return ExecutionBreaker(conn, timeout_seconds=900, clock=clock)


class TestMutualExclusion:
    def test_first_acquire_wins(self, breaker):
        assert breaker.acquire(1) is True
        assert breaker.acquire(2) is False
        assert breaker.holder().owner_item_id == 1

    def test_same_item_cannot_reenter(self, breaker):
        breaker.acquire(1)
        assert breaker.acquire(1) is False

    def test_release_frees(self, breaker):
        breaker.acquire(1)
        breaker.release()
        assert breaker.holder() is None
        assert breaker.acquire(2) is True

    def test_release_is_idempotent(self, breaker):
        breaker.release()
        breaker.release()
        assert not breaker.is_held

    def test_shared_across_instances(self, conn, clock):
        a = ExecutionBreaker(conn, clock=clock)
        b = ExecutionBreaker(conn, clock=clock)
        assert a.acquire(1)
        assert not b.acquire(2)


class TestTimeout:
    def test_not_reclaimed_at_exact_timeout(self, breaker, clock):
        breaker.acquire(1)
        clock.advance(900)
        assert breaker.acquire(2) is False

    def test_reclaimed_after_timeout(self, breaker, clock):
        breaker.acquire(1)
        clock.advance(901)
        assert breaker.holder() is None
        assert breaker.acquire(2) is True
        assert breaker.holder().owner_item_id == 2

    def test_per_call_timeout(self, breaker, clock):
        breaker.acquire(1, timeout_seconds=60)
        clock.advance(61)
        assert breaker.acquire(2)

    def test_holder_state(self, breaker, clock):
        breaker.acquire(7)
        state = breaker.holder()
        assert state.acquired_at == clock()
        assert state.timeout_seconds == 900
        assert state.to_dict()["owner_item_id"] == 7
