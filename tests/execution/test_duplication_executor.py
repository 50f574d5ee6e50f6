"""Tests for fanout.execution.executor — fan-out, idempotency and failure accounting."""

from __future__ import annotations

from datetime import timedelta

import pytest

from fanout.content.duplicator import ContentStoreDuplicator
from fanout.content.models import DuplicationResult, DuplicationStatus
from fanout.content.store import SqliteContentStore
from fanout.core.errors import BreakerBusy, PerLanguageFailure
from fanout.execution.models import ExecutionResult, MissionRecord, MissionStatus
from fanout.scheduling.protocol import JobPayload

TARGETS = ["en-ca", "en-au", "en-us", "en-nz"]


class ScriptedDuplicator:
    """Real duplication except for languages given a scripted response."""

    def __init__(self, inner, script=None, after=None):
        self.inner = inner
        self.script = script or {}
        self.after = after
        self.calls: list[str] = []

    def duplicate(self, item_id, language):
        self.calls.append(language)
        scripted = self.script.get(language)
        if isinstance(scripted, Exception):
            raise scripted
        result = scripted if scripted is not None else self.inner.duplicate(item_id, language)
        if self.after:
            self.after(language)
        return result


class AlwaysFails:
    def __init__(self):
        self.calls = 0

    def duplicate(self, item_id, language):
        self.calls += 1
        raise RuntimeError("translation API down")


@pytest.fixture()
def admitted(control, make_item, signal, clock):
    """An en-gb item admitted and waiting for its job."""
    item = make_item()
    control.on_item_created(item, signal)
    return item


def _count_items(conn) -> int:
    conn.execute("SELECT COUNT(*) FROM content_items")
    return conn.fetchone()[0]


class TestHappyPath:
    def test_fans_out_to_missing_languages(self, control, admitted, clock, sleeps, log_categories):
        clock.advance(45)
        control.run_due()

        record = control.record(admitted.id)
        assert record.status is MissionStatus.COMPLETED
        assert list(record.results) == TARGETS
        assert record.completed_at == clock()
        assert record.error is None
        assert control.ledger.count() == 1
        assert sleeps == [3.0, 3.0, 3.0]
        assert log_categories(control) == ["SCHEDULED", "EXECUTE"] + ["SUCCESS"] * 4 + ["COMPLETE"]

    def test_copies_carry_no_mission_state(self, control, admitted):
        outcome = control.execute(admitted.id)
        for language, new_id in outcome.results.items():
            assert control.store.get_item(new_id).language == language
            assert control.store.get_item(new_id).source_item_id == admitted.id
            assert control.record(new_id) is None

    def test_source_language_falls_back_to_default(self, control, make_item):
        item = make_item(language=None)
        outcome = control.execute(item.id)
        assert list(outcome.results) == TARGETS

    def test_existing_translations_are_skipped(self, control, admitted, make_item):
        make_item(language="en-us", source_item_id=admitted.id)
        outcome = control.execute(admitted.id)
        assert list(outcome.results) == ["en-ca", "en-au", "en-nz"]

    def test_language_override_is_deduplicated(self, control, admitted):
        outcome = control.execute(admitted.id, ["en-us", "fr-fr", "en-us", "en-gb"])
        assert list(outcome.results) == ["en-us", "fr-fr"]

    def test_manual_run_without_admission_spends_no_quota(self, control, make_item):
        item = make_item()
        outcome = control.execute(item.id)
        assert outcome.result is ExecutionResult.COMPLETED
        assert control.ledger.count() == 0


class TestIdempotency:
    def test_terminal_status_is_skipped(self, control, admitted, conn, sleeps, log_categories):
        control.execute(admitted.id)
        items_before = _count_items(conn)
        sleeps.clear()

        outcome = control.execute(admitted.id)

        assert outcome.result is ExecutionResult.SKIPPED
        assert outcome.status is MissionStatus.COMPLETED
        assert _count_items(conn) == items_before
        assert sleeps == []
        assert log_categories(control)[-1] == "SKIP"

    def test_duplicate_job_delivery_is_harmless(self, control, admitted, clock, conn):
        clock.advance(45)
        control.run_due()
        items_before = _count_items(conn)

        control.scheduler.schedule_once(JobPayload("mission.process", {"item_id": admitted.id}), clock())
        report = control.run_due()

        assert len(report.dispatched) == 1
        assert _count_items(conn) == items_before

    def test_delivery_finished_while_waiting_for_breaker_is_skipped(
        self, control, admitted, clock, monkeypatch, log_categories
    ):
        acquire = control.breaker.acquire
        calls: list[int] = []

        def acquire_after_other_delivery(item_id, timeout_seconds=None):
            calls.append(item_id)
            if len(calls) == 1:
                control.executor.execute(item_id)
            return acquire(item_id, timeout_seconds)

        monkeypatch.setattr(control.breaker, "acquire", acquire_after_other_delivery)

        outcome = control.execute(admitted.id)

        assert outcome.result is ExecutionResult.SKIPPED
        record = control.record(admitted.id)
        assert record.status is MissionStatus.COMPLETED
        assert list(record.results) == TARGETS
        assert record.completed_at == clock()
        assert log_categories(control)[-1] == "SKIP"
        assert control.breaker.holder() is None

    def test_force_reruns(self, control, admitted):
        control.execute(admitted.id)
        outcome = control.execute(admitted.id, ["fr-fr"], force=True)
        assert outcome.result is ExecutionResult.COMPLETED
        assert list(outcome.results) == TARGETS + ["fr-fr"]

    def test_already_complete_keeps_quota(self, control, admitted, make_item, log_categories):
        for language in TARGETS:
            make_item(language=language, source_item_id=admitted.id)

        outcome = control.execute(admitted.id)

        assert outcome.result is ExecutionResult.ALREADY_COMPLETE
        record = control.record(admitted.id)
        assert record.status is MissionStatus.ALREADY_COMPLETE
        assert record.completed_at is None
        assert control.ledger.count() == 1


class TestBreakerBusy:
    def test_requeues_without_failure(self, control, admitted, clock, log_categories):
        control.breaker.acquire(999)

        outcome = control.execute(admitted.id)

        assert outcome.result is ExecutionResult.REQUEUED
        assert isinstance(outcome.error, BreakerBusy)
        record = control.record(admitted.id)
        assert record.status is MissionStatus.SCHEDULED
        [requeued] = [j for j in control.scheduler.pending() if j["id"] == record.job_id]
        assert requeued["not_before"] == clock() + timedelta(seconds=300)
        assert control.failures.count() == 0
        assert control.breaker.holder().owner_item_id == 999
        assert log_categories(control)[-1] == "ABORT"


class TestSoftFailures:
    def test_bad_languages_are_skipped(self, make_control, make_item, conn, clock, log_categories):
        item = make_item()
        dup = ScriptedDuplicator(
            ContentStoreDuplicator(SqliteContentStore(conn, clock=clock)),
            {
                "en-ca": DuplicationResult.failed("refused"),
                "en-au": DuplicationResult.created(item.id),
                "en-us": DuplicationResult(DuplicationStatus.CREATED, new_id="12"),
            },
        )
        control = make_control(duplicator=dup)

        outcome = control.execute(item.id)

        assert outcome.result is ExecutionResult.COMPLETED
        assert list(outcome.results) == ["en-nz"]
        assert [lang.language for lang in outcome.languages if not lang.ok] == ["en-ca", "en-au", "en-us"]
        refused = outcome.languages[0].error
        assert isinstance(refused, PerLanguageFailure)
        assert refused.message == "refused"
        assert log_categories(control).count("WARN") == 3

    def test_repeated_id_is_rejected(self, make_control, make_item):
        class FixedId:
            def duplicate(self, item_id, language):
                return DuplicationResult.created(500)

        control = make_control(duplicator=FixedId())
        item = make_item()
        outcome = control.execute(item.id)
        assert outcome.results == {"en-ca": 500}

    def test_unavailable_primitive_still_completes(self, make_control, make_item, log_categories):
        control = make_control(duplicator=object())
        item = make_item()

        outcome = control.execute(item.id)

        assert outcome.result is ExecutionResult.COMPLETED
        assert outcome.results == {}
        assert control.record(item.id).status is MissionStatus.COMPLETED
        assert log_categories(control).count("WARN") == 4


class TestAbort:
    def test_abort_before_first_language(self, control, admitted, conn, log_categories):
        items_before = _count_items(conn)
        control.abort()

        outcome = control.execute(admitted.id)

        assert outcome.result is ExecutionResult.RETRY_SCHEDULED
        assert outcome.error.message == "Mission abort signal received"
        record = control.record(admitted.id)
        assert record.status is MissionStatus.RETRY
        assert record.quota_day is None
        assert control.ledger.count() == 0
        assert control.failures.count() == 1
        assert control.breaker.holder() is None
        assert _count_items(conn) == items_before

    def test_abort_between_languages_keeps_partial_results(self, make_control, make_item, signal, conn, clock):
        holder: dict = {}
        dup = ScriptedDuplicator(
            ContentStoreDuplicator(SqliteContentStore(conn, clock=clock)),
            after=lambda language: holder["control"].abort(),
        )
        control = make_control(duplicator=dup)
        holder["control"] = control
        item = make_item()
        control.on_item_created(item, signal)

        outcome = control.execute(item.id)

        assert outcome.result is ExecutionResult.RETRY_SCHEDULED
        assert dup.calls == ["en-ca"]
        assert list(control.record(item.id).results) == ["en-ca"]


class TestFailures:
    def test_exception_schedules_retry(self, make_control, make_item, signal, clock, log_categories):
        control = make_control(duplicator=AlwaysFails())
        item = make_item()
        control.on_item_created(item, signal)

        outcome = control.execute(item.id)

        assert outcome.result is ExecutionResult.RETRY_SCHEDULED
        record = control.record(item.id)
        assert record.status is MissionStatus.RETRY
        assert record.error == "translation API down"
        assert record.scheduled_at == clock()
        [job] = control.scheduler.pending("mission.process")
        assert job["id"] == record.job_id
        assert job["not_before"] == clock() + timedelta(seconds=300)
        assert control.breaker.holder() is None
        assert log_categories(control)[-2:] == ["ERROR", "RETRY-SCHEDULED"]

    def test_missing_item_fails(self, control, clock):
        control.repository.save(MissionRecord(item_id=4242, status=MissionStatus.SCHEDULED))
        outcome = control.execute(4242)
        assert outcome.result is ExecutionResult.RETRY_SCHEDULED
        assert control.record(4242).error == "Item 4242 no longer exists"

    def test_always_failing_mission_gives_up_after_three_retries(
        self, make_control, make_item, signal, clock, log_categories
    ):
        dup = AlwaysFails()
        control = make_control(duplicator=dup)
        item = make_item()
        control.on_item_created(item, signal)

        clock.advance(45)
        statuses = []
        for _ in range(4):
            control.run_due()
            statuses.append(control.record(item.id).status)
            clock.advance(300)

        assert statuses == [MissionStatus.RETRY] * 3 + [MissionStatus.FAILED]
        assert dup.calls == 4
        categories = log_categories(control)
        assert categories.count("RETRY-SCHEDULED") == 3
        assert categories.count("CRITICAL") == 1
        record = control.record(item.id)
        assert record.completed_at is not None
        assert record.attempts == 4
        assert control.scheduler.pending("mission.process") == []
        assert control.ledger.count() == 0

        assert control.execute(item.id).result is ExecutionResult.SKIPPED
