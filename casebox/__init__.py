"""casebox - isolated test-case execution harness.

casebox runs test-case functions (plain functions, generators that
suspend with ``yield`` and ``async def`` coroutines) inside a sandboxed
environment. Event subscriptions and timers a case registers are tracked
and removed when the case ends, patches made with ``stub`` are restored,
and failures come back as structured reports with the failing source
line and its local variables. A failing case never crashes the host.

Key Features:
    - Sandboxed environments: ``expect``, ``stub``, ``events``, ``timers``
      injected by parameter name
    - Side-effect reversal: every tracked registration removed on cleanup
    - Suspension-safe execution: failures after a ``yield`` are still caught
    - Failure attribution: source line and locals of the failing frame
    - Async cases: ``done()``/``fail()`` with fire-once expectations

Example:
    >>> from casebox import Harness
    >>>
    >>> def test_spawn_hook(expect, events):
    ...     events.register("PlayerSpawn", "greet", lambda player: None)
    ...     expect(events.get_table()["PlayerSpawn"]).to.exist()
    >>>
    >>> result = Harness().run_case(test_spawn_hook)
    >>> result.outcome.value
    'passed'
"""

from casebox.adapters import ControllableTimerAdapter, InMemoryEventBus
from casebox.config import HarnessSettings, load_settings
from casebox.core import CaseOutcome, CaseResult, FailureReport
from casebox.errors import (
    CaseboxError,
    ConfigError,
    ContextStateError,
    ErrorCode,
    ErrorContext,
    ExpectationFailed,
    RegistrationError,
)
from casebox.expectations import Expectation, expect
from casebox.harness import GroupSetupResult, Harness
from casebox.ports import EventPort, HarnessEvent, HookPriority, TimerPort
from casebox.runner import (
    AsyncCaseRun,
    AsyncEnvFactory,
    ExecutionContext,
    StackInspector,
    SuspendedRunner,
    normalize_reason,
)
from casebox.sandbox import (
    CaseState,
    EnvFlavor,
    SandboxComposer,
    SandboxEnvironment,
    create_case_state,
)
from casebox.stubs import Stub, StubMaker

__version__ = "0.1.0"

__all__ = [
    "AsyncCaseRun",
    "AsyncEnvFactory",
    "CaseOutcome",
    "CaseResult",
    "CaseState",
    "CaseboxError",
    "ConfigError",
    "ContextStateError",
    "ControllableTimerAdapter",
    "EnvFlavor",
    "ErrorCode",
    "ErrorContext",
    "EventPort",
    "ExecutionContext",
    "Expectation",
    "ExpectationFailed",
    "FailureReport",
    "GroupSetupResult",
    "Harness",
    "HarnessEvent",
    "HarnessSettings",
    "HookPriority",
    "InMemoryEventBus",
    "RegistrationError",
    "SandboxComposer",
    "SandboxEnvironment",
    "StackInspector",
    "Stub",
    "StubMaker",
    "SuspendedRunner",
    "TimerPort",
    "create_case_state",
    "expect",
    "load_settings",
    "normalize_reason",
]
