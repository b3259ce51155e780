"""Async cases.

An async case finishes later than its body returns: it calls ``done()``
or ``fail(reason)`` from a timer or event callback, or an expectation
fails inside one. Those callbacks run on the host's stack, so nothing in
them may raise. The async environment's ``expect`` therefore builds
expectations whose failures are reported through a callback instead of
raised, once per expectation.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, MutableMapping
from typing import Any

from casebox.core.models import CaseOutcome, CaseResult, FailureReport
from casebox.errors import EXPECTATION_MARKER, ContextStateError, ErrorCode, ExpectationFailed
from casebox.observability import log_context
from casebox.runner.safe_run import SuspendedRunner
from casebox.sandbox.environment import (
    EnvFlavor,
    EnvironmentCleanup,
    ExpectUsage,
    SandboxComposer,
    SandboxEnvironment,
    create_case_state,
)

logger = logging.getLogger(__name__)

FailureCallback = Callable[[FailureReport], None]


def _raise_failure(reason: str) -> None:
    raise ExpectationFailed(f"{EXPECTATION_MARKER}: {reason}")


class AsyncEnvFactory:
    """Builds environments for async cases."""

    def __init__(self, composer: SandboxComposer, runner: SuspendedRunner) -> None:
        self.composer = composer
        self.runner = runner

    def _reporting_expect(self, on_failed_expectation: FailureCallback) -> Callable[[Any], Any]:
        builder = self.composer.expect
        runner = self.runner

        def expect(subject: Any) -> Any:
            expectation = builder(subject)
            original_fail = expectation.fail
            recorded = False

            def fail_once(suffix: str, *args: Any) -> None:
                nonlocal recorded
                if recorded:
                    return
                recorded = True

                caller = inspect.currentframe().f_back
                try:
                    ok, report = runner.run(original_fail, suffix, *args, outer_frame=caller)
                finally:
                    del caller
                if not ok:
                    on_failed_expectation(report)

            expectation.fail = fail_once
            return expectation

        return expect

    def make_async_env(
        self,
        done: Callable[[], None],
        fail: Callable[..., None],
        on_failed_expectation: FailureCallback,
    ) -> tuple[SandboxEnvironment, EnvironmentCleanup]:
        """Build an async environment.

        Args:
            done: Exposed to the case as ``done``.
            fail: Exposed to the case as ``fail``.
            on_failed_expectation: Receives the report of the first failure
                of each expectation built by the environment's ``expect``.
        """
        tools = {
            "expect": self._reporting_expect(on_failed_expectation),
            "done": done,
            "fail": fail,
        }
        return self.composer.compose(EnvFlavor.ASYNC, tools=tools)


class AsyncCaseRun:
    """One async case, from start until it settles.

    The run settles on the first of ``done()``, ``fail(reason)``, a failed
    expectation or an error raised by the body itself. The environment is
    cleaned up when it settles. Later signals are ignored.

    Example:
        >>> def case(expect, timers, done):
        ...     timers.schedule_once(1, lambda: (expect(1).to.eq(1), done()))
        >>> run = AsyncCaseRun(factory, runner, case).start()
        >>> timer_adapter.advance(1)
        1
        >>> run.result.outcome
        <CaseOutcome.PASSED: 'passed'>
    """

    def __init__(
        self,
        factory: AsyncEnvFactory,
        runner: SuspendedRunner,
        func: Callable[..., Any],
        name: str | None = None,
        state: MutableMapping[str, Any] | None = None,
        on_settled: Callable[[CaseResult], None] | None = None,
    ) -> None:
        self.factory = factory
        self.runner = runner
        self.func = func
        self.name = name or getattr(func, "__name__", repr(func))
        self.state = state if state is not None else create_case_state()
        self.on_settled = on_settled
        self.result: CaseResult | None = None
        self.env: SandboxEnvironment | None = None
        self._cleanup: EnvironmentCleanup | None = None
        self._usage: ExpectUsage | None = None
        self._started_at = 0.0

    @property
    def started(self) -> bool:
        return self.env is not None

    @property
    def settled(self) -> bool:
        return self.result is not None

    def start(self) -> AsyncCaseRun:
        """Build the environment and run the case body.

        Raises:
            ContextStateError: If the run was already started.
        """
        if self.started:
            raise ContextStateError(
                f"Async case {self.name!r} was already started",
                error_code=ErrorCode.CONTEXT_RUNNING,
            )

        self._started_at = time.perf_counter()
        self.env, self._cleanup = self.factory.make_async_env(
            self._done, self._fail, self._on_failed_expectation
        )
        self._usage = self.env.track_expectations()

        with log_context(case=self.name):
            ok, report = self.runner.run(
                self.func, **self.env.resolve_arguments(self.func, self.state)
            )
        if not ok:
            self._settle(CaseOutcome.FAILED, report)
        return self

    def _done(self) -> None:
        if self.settled:
            logger.debug(f"Ignoring done() for settled async case {self.name!r}")
            return
        outcome = CaseOutcome.PASSED if self._usage.used else CaseOutcome.EMPTY
        self._settle(outcome)

    def _fail(self, reason: str = "fail() was called") -> None:
        if self.settled:
            logger.debug(f"Ignoring fail() for settled async case {self.name!r}")
            return

        caller = inspect.currentframe().f_back
        try:
            _, report = self.runner.run(_raise_failure, str(reason), outer_frame=caller)
        finally:
            del caller
        self._settle(CaseOutcome.FAILED, report)

    def _on_failed_expectation(self, report: FailureReport) -> None:
        if self.settled:
            logger.debug(
                f"Ignoring failed expectation for settled async case {self.name!r}: {report.reason}"
            )
            return
        self._settle(CaseOutcome.FAILED, report)

    def _settle(self, outcome: CaseOutcome, report: FailureReport | None = None) -> None:
        if self.settled:
            logger.debug(f"Async case {self.name!r} already settled")
            return

        duration_ms = (time.perf_counter() - self._started_at) * 1000
        self.result = CaseResult(
            name=self.name, outcome=outcome, report=report, duration_ms=duration_ms
        )
        logger.debug(f"Async case {self.name!r} settled as {outcome.value}")

        if self._cleanup is not None:
            self._cleanup()
        if self.on_settled is not None:
            self.on_settled(self.result)
