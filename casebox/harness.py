"""Harness entry point.

The Harness wires settings, the host's event and timer ports, the sandbox
composer, the runner and the stack inspector together, and runs cases:

    harness = Harness()

    def test_addition(expect):
        expect(1 + 1).to.eq(2)

    result = harness.run_case(test_addition)
    assert result.outcome is CaseOutcome.PASSED

A case never raises out of ``run_case``; its failure comes back as the
result's FailureReport. The case's event and timer registrations and
patches are undone before ``run_case`` returns.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from casebox.adapters import ControllableTimerAdapter, InMemoryEventBus
from casebox.config import HarnessSettings
from casebox.core.models import CaseOutcome, CaseResult, FailureReport
from casebox.observability import configure_logging, log_context
from casebox.ports.events import EventPort
from casebox.ports.timers import TimerPort
from casebox.runner.async_env import AsyncCaseRun, AsyncEnvFactory, FailureCallback
from casebox.runner.inspector import StackInspector
from casebox.runner.safe_run import SuspendedRunner
from casebox.sandbox.environment import (
    CaseState,
    EnvFlavor,
    EnvironmentCleanup,
    SandboxComposer,
    SandboxEnvironment,
    create_case_state,
)

logger = logging.getLogger(__name__)


def _case_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__name__", repr(func))


@dataclass
class GroupSetupResult:
    """Outcome of a group's ``before_all`` setup.

    Attributes:
        state: The group state the setup populated.
        report: The setup's failure, if it failed.
        cleanup: Undoes the setup's side effects once the group is done.
    """

    state: MutableMapping[str, Any]
    report: FailureReport | None
    cleanup: EnvironmentCleanup = field(repr=False)

    @property
    def succeeded(self) -> bool:
        return self.report is None


class Harness:
    """Runs test cases in sandboxed environments."""

    def __init__(
        self,
        events: EventPort | None = None,
        timers: TimerPort | None = None,
        settings: HarnessSettings | None = None,
        ambient: MutableMapping[str, Any] | None = None,
        configure_logs: bool = False,
    ) -> None:
        """Initialize the harness.

        Args:
            events: Host event port. Defaults to an InMemoryEventBus.
            timers: Host timer port. Defaults to a ControllableTimerAdapter.
            settings: Harness settings. Defaults to HarnessSettings().
            ambient: Namespace shared by every case this harness runs.
            configure_logs: Configure the ``casebox`` logger from settings.
        """
        self.settings = settings or HarnessSettings()
        self.events = events if events is not None else InMemoryEventBus()
        self.timers = timers if timers is not None else ControllableTimerAdapter()

        if configure_logs:
            configure_logging(level=self.settings.log_level, json_format=self.settings.log_json)

        self.inspector = StackInspector(self.settings)
        self.runner = SuspendedRunner(self.inspector)
        self.composer = SandboxComposer(self.events, self.timers, self.settings, ambient)
        self.async_factory = AsyncEnvFactory(self.composer, self.runner)

    @property
    def ambient(self) -> MutableMapping[str, Any]:
        return self.composer.ambient

    def compose(
        self, flavor: EnvFlavor = EnvFlavor.PLAIN
    ) -> tuple[SandboxEnvironment, EnvironmentCleanup]:
        """Build a bare sandbox environment and its cleanup."""
        return self.composer.compose(flavor)

    def make_async_env(
        self,
        done: Callable[[], None],
        fail: Callable[..., None],
        on_failed_expectation: FailureCallback,
    ) -> tuple[SandboxEnvironment, EnvironmentCleanup]:
        """Build an async environment. See AsyncEnvFactory.make_async_env."""
        return self.async_factory.make_async_env(done, fail, on_failed_expectation)

    def run_case(
        self,
        func: Callable[..., Any],
        state: MutableMapping[str, Any] | None = None,
        before: Callable[..., Any] | None = None,
        name: str | None = None,
    ) -> CaseResult:
        """Run one case in a fresh sandbox.

        Args:
            func: The case. Its parameters are filled from the environment.
            state: Case state. Defaults to a fresh CaseState.
            before: Runs first in the same environment. If it fails, the case
                fails with its report and ``func`` is not run.
            name: Case name. Defaults to the function's name.

        Returns:
            The case result. FAILED with a report if the case or ``before``
            failed, EMPTY if the case never called ``expect``, else PASSED.
        """
        name = name or _case_name(func)
        state = state if state is not None else create_case_state()
        started = time.perf_counter()

        with log_context(case=name):
            env, cleanup = self.composer.compose(EnvFlavor.PLAIN)
            usage = env.track_expectations()
            report: FailureReport | None = None
            try:
                if before is not None:
                    _, report = self.runner.run(before, **env.resolve_arguments(before, state))
                    usage.reset()
                if report is None:
                    _, report = self.runner.run(func, **env.resolve_arguments(func, state))
            finally:
                cleanup()

            if report is not None:
                outcome = CaseOutcome.FAILED
            elif not usage.used:
                outcome = CaseOutcome.EMPTY
            else:
                outcome = CaseOutcome.PASSED

            duration_ms = (time.perf_counter() - started) * 1000
            logger.debug(f"Case {name!r} {outcome.value} in {duration_ms:.1f}ms")

        return CaseResult(name=name, outcome=outcome, report=report, duration_ms=duration_ms)

    def run_group_setup(
        self,
        before_all: Callable[..., Any],
        group_state: MutableMapping[str, Any] | None = None,
    ) -> GroupSetupResult:
        """Run a group's ``before_all`` in a group-setup environment.

        The setup's registrations stay in place until the returned
        result's ``cleanup`` is called.
        """
        group_state = group_state if group_state is not None else {}
        env, cleanup = self.composer.compose(EnvFlavor.GROUP_SETUP)

        with log_context(case=_case_name(before_all)):
            _, report = self.runner.run(
                before_all, **env.resolve_arguments(before_all, group_state)
            )

        if report is not None:
            logger.debug(f"Group setup {_case_name(before_all)!r} failed: {report.reason}")
        return GroupSetupResult(state=group_state, report=report, cleanup=cleanup)

    def run_group(
        self,
        cases: Iterable[Callable[..., Any]],
        before_all: Callable[..., Any] | None = None,
        before_each: Callable[..., Any] | None = None,
    ) -> list[CaseResult]:
        """Run cases that share a group state.

        Each case gets its own CaseState reading through to the group
        state. If ``before_all`` fails, every case fails with its report
        without running.
        """
        group_state: MutableMapping[str, Any] = {}
        setup: GroupSetupResult | None = None
        if before_all is not None:
            setup = self.run_group_setup(before_all, group_state)

        results: list[CaseResult] = []
        try:
            for case in cases:
                if setup is not None and not setup.succeeded:
                    results.append(
                        CaseResult(
                            name=_case_name(case),
                            outcome=CaseOutcome.FAILED,
                            report=setup.report,
                        )
                    )
                    continue

                state: CaseState = create_case_state(group_state)
                results.append(self.run_case(case, state=state, before=before_each))
        finally:
            if setup is not None:
                setup.cleanup()

        return results

    def start_async_case(
        self,
        func: Callable[..., Any],
        state: MutableMapping[str, Any] | None = None,
        name: str | None = None,
        on_settled: Callable[[CaseResult], None] | None = None,
    ) -> AsyncCaseRun:
        """Start an async case. It settles when it calls ``done`` or ``fail``.

        Returns:
            The started run. ``run.result`` is set once it settles.
        """
        run = AsyncCaseRun(
            self.async_factory,
            self.runner,
            func,
            name=name,
            state=state,
            on_settled=on_settled,
        )
        return run.start()
