"""Pytest fixtures for casebox tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from casebox.adapters import ControllableTimerAdapter, InMemoryEventBus
from casebox.config import HarnessSettings
from casebox.harness import Harness
from casebox.runner import StackInspector, SuspendedRunner
from casebox.sandbox import SandboxComposer


class Counter:
    """Callable that counts its calls, usable as an event or timer callback."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, *args: object) -> None:
        self.calls.append(args)

    @property
    def count(self) -> int:
        return len(self.calls)


@pytest.fixture(autouse=True)
def reset_casebox_logger() -> Iterator[None]:
    """Undo configure_logging() so handlers never outlive a test."""
    logger = logging.getLogger("casebox")
    level = logger.level
    yield
    logger.handlers.clear()
    logger.setLevel(level)


@pytest.fixture
def settings() -> HarnessSettings:
    return HarnessSettings()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def timers() -> ControllableTimerAdapter:
    return ControllableTimerAdapter()


@pytest.fixture
def counter() -> Counter:
    return Counter()


@pytest.fixture
def composer(
    event_bus: InMemoryEventBus,
    timers: ControllableTimerAdapter,
    settings: HarnessSettings,
) -> SandboxComposer:
    return SandboxComposer(event_bus, timers, settings)


@pytest.fixture
def inspector(settings: HarnessSettings) -> StackInspector:
    return StackInspector(settings)


@pytest.fixture
def runner(inspector: StackInspector) -> SuspendedRunner:
    return SuspendedRunner(inspector)


@pytest.fixture
def harness(
    event_bus: InMemoryEventBus,
    timers: ControllableTimerAdapter,
    settings: HarnessSettings,
) -> Harness:
    return Harness(events=event_bus, timers=timers, settings=settings)
