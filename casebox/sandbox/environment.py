"""Sandbox environments for test cases.

A SandboxEnvironment is a chain of mappings searched innermost first:

1. test tools (``expect``, ``stub``; async environments add ``done`` and ``fail``)
2. the tracked facades (``events``, ``timers``)
3. the ambient namespace shared by every case run by one harness
4. Python builtins

Case functions receive values from the environment by parameter name::

    def test_spawn_hook(expect, events, state):
        events.register("PlayerSpawn", "greet", greet)
        expect(events.get_table()["PlayerSpawn"]).to.exist()

SandboxComposer builds one environment per case together with the
EnvironmentCleanup that undoes the case's side effects.
"""

from __future__ import annotations

import builtins
import inspect
import logging
from collections import ChainMap
from collections.abc import Callable, Mapping, MutableMapping
from enum import Enum
from typing import Any

from casebox.config import HarnessSettings
from casebox.expectations import expect as default_expect
from casebox.ports.events import EventPort, HarnessEvent
from casebox.ports.timers import TimerPort
from casebox.sandbox.tracking import EventFacade, SideEffectTracker, TimerFacade
from casebox.stubs import StubMaker

logger = logging.getLogger(__name__)


class EnvFlavor(str, Enum):
    """Which kind of code an environment was built for."""

    PLAIN = "plain"
    GROUP_SETUP = "group_setup"
    ASYNC = "async"


_NOTIFICATIONS = {
    EnvFlavor.PLAIN: HarnessEvent.ENV_CREATED,
    EnvFlavor.GROUP_SETUP: HarnessEvent.GROUP_ENV_CREATED,
    EnvFlavor.ASYNC: HarnessEvent.ASYNC_ENV_CREATED,
}


class ExpectUsage:
    """Wraps an expectation builder and counts the expectations it builds.

    A case that never builds an expectation is reported as empty.
    """

    def __init__(self, builder: Callable[[Any], Any]) -> None:
        self.builder = builder
        self.count = 0

    def __call__(self, subject: Any) -> Any:
        self.count += 1
        return self.builder(subject)

    @property
    def used(self) -> bool:
        return self.count > 0

    def reset(self) -> None:
        self.count = 0


class SandboxEnvironment(ChainMap):
    """Layered lookup of the names a case can use.

    Reads fall through the layers; writes go to the innermost layer.
    ``env.name`` is the same as ``env["name"]``.
    """

    def __init__(self, *maps: MutableMapping[str, Any], flavor: EnvFlavor = EnvFlavor.PLAIN) -> None:
        super().__init__(*maps)
        self.flavor = flavor

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"Sandbox environment has no {name!r}") from None

    def __repr__(self) -> str:
        names = sorted({key for layer in self.maps[:2] for key in layer})
        return f"<SandboxEnvironment flavor={self.flavor.value} tools={names}>"

    def track_expectations(self) -> ExpectUsage:
        """Replace the environment's ``expect`` with a counting wrapper."""
        usage = ExpectUsage(self["expect"])
        self.maps[0]["expect"] = usage
        return usage

    def set_ambient(self, key: str, value: Any) -> None:
        """Write ``key`` to the ambient namespace shared by all cases."""
        self.maps[-2][key] = value

    def resolve_arguments(self, func: Callable[..., Any], state: Any = None) -> dict[str, Any]:
        """Build keyword arguments for ``func`` from its parameter names.

        ``state`` receives the case state, ``env`` the environment itself,
        and any other name found in the environment receives that value.
        Names that resolve to nothing are left to the function's defaults.
        """
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            return {}

        kwargs: dict[str, Any] = {}
        for name, param in signature.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD, param.POSITIONAL_ONLY):
                continue
            if name == "state":
                kwargs[name] = state
            elif name == "env":
                kwargs[name] = self
            elif name in self:
                kwargs[name] = self[name]
        return kwargs


class CaseState(ChainMap):
    """Per-case state that reads through to the group's state.

    Keys the case sets live only in the case's own mapping, so the group
    state is never modified through it. Values read from the group are
    shared, not copied.
    """

    def __init__(
        self,
        own: MutableMapping[str, Any] | None = None,
        group: MutableMapping[str, Any] | None = None,
    ) -> None:
        super().__init__(own if own is not None else {}, group if group is not None else {})

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "maps" or name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None


def create_case_state(group_state: MutableMapping[str, Any] | None = None) -> CaseState:
    """Create a fresh case state on top of ``group_state``."""
    return CaseState({}, group_state)


class EnvironmentCleanup:
    """Undoes one environment's side effects.

    The first call reverses the tracked registrations and resets the
    stubs; later calls do nothing. Registrations and attribute stubs made
    through the environment after that are undone immediately.
    """

    def __init__(self, tracker: SideEffectTracker, stubs: StubMaker) -> None:
        self._tracker = tracker
        self._stubs = stubs
        self.done = False

    def __call__(self) -> None:
        if self.done:
            logger.debug("Environment already cleaned up")
            return
        self.done = True
        self._tracker.close()
        self._stubs.close()


class SandboxComposer:
    """Builds sandbox environments on top of the host's ports."""

    def __init__(
        self,
        events: EventPort,
        timers: TimerPort,
        settings: HarnessSettings | None = None,
        ambient: MutableMapping[str, Any] | None = None,
        expect: Callable[[Any], Any] = default_expect,
    ) -> None:
        self.events = events
        self.timers = timers
        self.settings = settings or HarnessSettings()
        self.ambient: MutableMapping[str, Any] = ambient if ambient is not None else {}
        self.expect = expect

    def compose(
        self,
        flavor: EnvFlavor = EnvFlavor.PLAIN,
        tools: Mapping[str, Any] | None = None,
    ) -> tuple[SandboxEnvironment, EnvironmentCleanup]:
        """Build an environment and its cleanup.

        Args:
            flavor: Kind of environment; selects the lifecycle notification.
            tools: Extra or replacement entries for the tools layer.

        Returns:
            The environment and the callable that undoes its side effects.
        """
        tracker = SideEffectTracker(self.events, self.timers)
        stub = StubMaker()

        test_tools: dict[str, Any] = {"expect": self.expect, "stub": stub}
        if tools:
            test_tools.update(tools)

        facades = {
            "events": EventFacade(self.events, tracker),
            "timers": TimerFacade(self.timers, tracker, prefix=self.settings.timer_prefix),
        }

        env = SandboxEnvironment(
            test_tools,
            facades,
            self.ambient,
            vars(builtins),
            flavor=flavor,
        )
        cleanup = EnvironmentCleanup(tracker, stub)

        self.events.run(_NOTIFICATIONS[flavor], env)
        return env, cleanup
