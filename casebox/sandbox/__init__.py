"""Sandboxed environments and side-effect tracking."""

from casebox.sandbox.environment import (
    CaseState,
    EnvFlavor,
    EnvironmentCleanup,
    ExpectUsage,
    SandboxComposer,
    SandboxEnvironment,
    create_case_state,
)
from casebox.sandbox.tracking import (
    EventFacade,
    RegistrationCategory,
    SideEffectTracker,
    TimerFacade,
    TrackedRegistration,
)

__all__ = [
    "CaseState",
    "EnvFlavor",
    "EnvironmentCleanup",
    "EventFacade",
    "ExpectUsage",
    "RegistrationCategory",
    "SandboxComposer",
    "SandboxEnvironment",
    "SideEffectTracker",
    "TimerFacade",
    "TrackedRegistration",
    "create_case_state",
]
