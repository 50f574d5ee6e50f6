"""Tests for fanout.execution.retry — bounded retry and failure decay."""

from __future__ import annotations

import pytest

from fanout.core.errors import AdmissionRejected, ExecutionFailed
from fanout.core.state import StateStore
from fanout.execution.retry import ConstantBackoff, FailureCounter, RetryPolicy


@pytest.fixture()
def counter(conn, clock):
    return FailureCounter(StateStore(conn, clock=clock), clock=clock)


@pytest.fixture()
def policy(counter):
    return RetryPolicy(ConstantBackoff(max_retries=3, delay=300), counter)


class TestConstantBackoff:
    def test_delay_and_bound(self):
        strategy = ConstantBackoff(max_retries=3, delay=300)
        assert strategy.next_delay(0) == strategy.next_delay(2) == 300
        assert [strategy.should_retry(n) for n in range(5)] == [True, True, True, False, False]

    def test_non_retryable_error(self):
        assert not ConstantBackoff().should_retry(0, AdmissionRejected("not-eligible-type"))


class TestFailureCounter:
    def test_record_returns_previous_count(self, counter, clock):
        assert [counter.record() for _ in range(3)] == [0, 1, 2]
        assert counter.count() == 3
        assert counter.last_failure_at() == clock()

    def test_count_expires_an_hour_after_last_write(self, counter, clock):
        counter.record()
        clock.advance(3600)
        assert counter.count() == 0
        assert counter.last_failure_at() is not None

    def test_decay(self, counter, clock):
        counter.record()
        clock.advance(3600)
        assert counter.decay(3600) is False
        clock.advance(1)
        assert counter.decay(3600) is True
        assert counter.count() == 0
        assert counter.last_failure_at() is None

    def test_decay_without_failures(self, counter):
        assert counter.decay(3600) is False


class TestRetryPolicy:
    def test_fourth_failure_is_not_rescheduled(self, policy):
        decisions = [policy.record_failure(ExecutionFailed("boom")) for _ in range(4)]
        assert [d.retry for d in decisions] == [True, True, True, False]
        assert [d.failure_count for d in decisions] == [1, 2, 3, 4]
        assert decisions[0].delay == 300
        assert decisions[3].delay == 0

    def test_decay_restores_full_budget(self, policy, counter, clock):
        for _ in range(3):
            policy.record_failure()
        clock.advance(3601)
        assert counter.decay(3600)

        assert [policy.record_failure().retry for _ in range(4)] == [True, True, True, False]
