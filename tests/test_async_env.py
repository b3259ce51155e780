"""Tests for async environments and async case runs."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from casebox import CaseOutcome, CaseResult, FailureReport, Harness
from casebox.adapters import ControllableTimerAdapter, InMemoryEventBus
from casebox.errors import ContextStateError
from casebox.sandbox import EnvFlavor


class TestMakeAsyncEnv:
    """Tests for AsyncEnvFactory.make_async_env."""

    def test_environment_tools(self, harness: Harness) -> None:
        def done() -> None:
            pass

        def fail(reason: str = "") -> None:
            pass

        env, _ = harness.make_async_env(done, fail, lambda report: None)

        assert env.flavor is EnvFlavor.ASYNC
        assert env["done"] is done
        assert env["fail"] is fail
        assert "stub" in env
        assert "events" in env
        assert "timers" in env

    def test_failing_matcher_does_not_raise(self, harness: Harness) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        env.expect(1).to.eq(2)

        assert len(reports) == 1
        assert reports[0].reason == "Expected 1 to equal '2'"

    def test_expectation_reports_once(self, harness: Harness) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        check = env.expect(1)
        check.to.eq(2)
        check.to.eq(3)
        check.to_not.exist()

        assert len(reports) == 1
        assert reports[0].reason == "Expected 1 to equal '2'"

    def test_each_expectation_reports_separately(self, harness: Harness) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        env.expect(1).to.eq(2)
        env.expect("a").to.be_none()

        assert [r.reason for r in reports] == [
            "Expected 1 to equal '2'",
            "Expected a to be None",
        ]

    def test_passing_matchers_report_nothing(self, harness: Harness) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        env.expect(1).to.eq(1).exist()

        assert reports == []

    def test_report_points_at_calling_line(self, harness: Harness) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        def callback() -> None:
            level = 3
            env.expect(level).to.be_less_than(1)

        callback()

        report = reports[0]
        assert Path(report.source_file).name == "test_async_env.py"
        assert report.line_number == callback.__code__.co_firstlineno + 2
        assert ("level", "3") in report.locals

    def test_failure_inside_timer_callback(
        self, harness: Harness, timers: ControllableTimerAdapter
    ) -> None:
        reports: list[FailureReport] = []
        env, _ = harness.make_async_env(lambda: None, lambda reason="": None, reports.append)

        env.timers.schedule_once(1, lambda: env.expect(False).to.be_true())
        timers.advance(1)

        assert [r.reason for r in reports] == ["Expected False to be true"]


class TestAsyncCaseRun:
    """Tests for AsyncCaseRun settlement."""

    def test_done_passes(self, harness: Harness, timers: ControllableTimerAdapter) -> None:
        def test_async(expect, timers, done):
            def later() -> None:
                expect(1).to.eq(1)
                done()

            timers.schedule_once(1, later)

        run = harness.start_async_case(test_async)
        assert run.settled is False

        timers.advance(1)

        assert run.settled is True
        assert run.result.outcome is CaseOutcome.PASSED
        assert run.result.name == "test_async"

    def test_done_without_expectations_is_empty(self, harness: Harness) -> None:
        def test_async(done):
            done()

        run = harness.start_async_case(test_async)
        assert run.result.outcome is CaseOutcome.EMPTY

    def test_failed_expectation_settles_once(
        self, harness: Harness, timers: ControllableTimerAdapter
    ) -> None:
        settled: list[CaseResult] = []

        def test_async(expect, timers, done):
            def later() -> None:
                check = expect(1)
                check.to.eq(2)
                check.to.eq(3)
                expect(2).to.eq(4)
                done()

            timers.schedule_once(1, later)

        run = harness.start_async_case(test_async, on_settled=settled.append)
        timers.advance(1)

        assert len(settled) == 1
        assert settled[0] is run.result
        assert run.result.outcome is CaseOutcome.FAILED
        assert run.result.report.reason == "Expected 1 to equal '2'"

    def test_fail_with_reason(self, harness: Harness, timers: ControllableTimerAdapter) -> None:
        def test_async(fail, timers, expect):
            def later() -> None:
                expect(1).to.exist()
                fail("server never answered")

            timers.schedule_once(2, later)

        run = harness.start_async_case(test_async)
        timers.advance(2)

        report = run.result.report
        assert run.result.outcome is CaseOutcome.FAILED
        assert report.reason == "server never answered"
        assert Path(report.source_file).name == "test_async_env.py"

    def test_fail_points_at_caller(self, harness: Harness) -> None:
        def test_async(fail):
            attempts = 2
            fail("gave up")

        run = harness.start_async_case(test_async)

        assert run.result.report.line_number == test_async.__code__.co_firstlineno + 2
        assert ("attempts", "2") in run.result.report.locals

    def test_fail_default_reason(self, harness: Harness) -> None:
        run = harness.start_async_case(lambda fail: fail())
        assert run.result.report.reason == "fail() was called"

    def test_synchronous_error_settles_immediately(
        self, harness: Harness, event_bus: InMemoryEventBus
    ) -> None:
        def test_async(events, done):
            events.register("Think", "tick", done)
            raise ValueError("setup broke")

        run = harness.start_async_case(test_async)

        assert run.result.outcome is CaseOutcome.FAILED
        assert run.result.report.reason == "Unhandled: ValueError: setup broke"
        assert not event_bus.is_registered("Think", "tick")

    def test_cleanup_runs_when_settled(
        self,
        harness: Harness,
        event_bus: InMemoryEventBus,
        timers: ControllableTimerAdapter,
    ) -> None:
        def test_async(events, timers, done, expect):
            events.register("Think", "tick", lambda: None)
            timers.create("repeat", 1, 0, lambda: None)
            timers.schedule_once(5, lambda: (expect(1).to.eq(1), done()))

        run = harness.start_async_case(test_async)
        assert event_bus.is_registered("Think", "tick")
        assert timers.exists("repeat")

        timers.advance(5)

        assert run.result.outcome is CaseOutcome.PASSED
        assert not event_bus.is_registered("Think", "tick")
        assert not timers.exists("repeat")

    def test_registrations_after_failed_expectation_are_removed(
        self,
        harness: Harness,
        event_bus: InMemoryEventBus,
        timers: ControllableTimerAdapter,
    ) -> None:
        def test_async(expect, timers, events):
            expect(1).to.eq(2)
            timers.create("late_timer", 5, 0, lambda: None)
            events.register("Think", "late_hook", lambda: None)

        run = harness.start_async_case(test_async)

        assert run.result.outcome is CaseOutcome.FAILED
        assert not timers.exists("late_timer")
        assert not event_bus.is_registered("Think", "late_hook")

    def test_registrations_after_done_are_removed(
        self,
        harness: Harness,
        event_bus: InMemoryEventBus,
        timers: ControllableTimerAdapter,
    ) -> None:
        def test_async(expect, timers, events, done):
            expect(1).to.eq(1)
            done()
            timers.create("after_done", 1, 0, lambda: None)
            events.register("Think", "after_done", lambda: None)

        run = harness.start_async_case(test_async)
        timers.advance(5)

        assert run.result.outcome is CaseOutcome.PASSED
        assert not timers.exists("after_done")
        assert not event_bus.is_registered("Think", "after_done")

    def test_late_signals_are_ignored(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        signals: dict = {}

        def test_async(done, fail, expect):
            signals["done"] = done
            signals["fail"] = fail
            expect(1).to.eq(1)
            done()

        run = harness.start_async_case(test_async)
        caplog.set_level(logging.DEBUG, logger="casebox")

        signals["fail"]("too late")
        signals["done"]()

        assert run.result.outcome is CaseOutcome.PASSED
        assert "Ignoring fail()" in caplog.text
        assert "Ignoring done()" in caplog.text

    def test_start_twice(self, harness: Harness) -> None:
        run = harness.start_async_case(lambda done: done())
        with pytest.raises(ContextStateError):
            run.start()

    def test_pending_case_stays_pending(self, harness: Harness) -> None:
        run = harness.start_async_case(lambda expect: expect(1).to.eq(1))
        assert run.settled is False
        assert run.result is None
