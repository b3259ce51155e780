"""Timer subsystem port for casebox."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ScheduledTimer:
    """A timer known to a TimerPort.

    Attributes:
        identifier: Unique timer identifier.
        delay: Seconds between firings.
        repetitions: Remaining firings; 0 means forever.
        callback: Function invoked on each firing.
        args: Extra positional arguments for the callback.
        next_fire: Clock value at which the timer fires next.
    """

    identifier: Hashable
    delay: float
    repetitions: int
    callback: Callable[..., Any]
    args: tuple[Any, ...] = field(default_factory=tuple)
    next_fire: float = 0.0


class TimerPort(ABC):
    """Abstract port for the host's timer system.

    Implementations must make ``remove`` idempotent.
    """

    @abstractmethod
    def create(
        self,
        identifier: Hashable,
        delay: float,
        repetitions: int,
        callback: Callable[..., Any],
        *args: Any,
    ) -> None:
        """Create (or replace) a timer firing every ``delay`` seconds.

        Args:
            identifier: Unique timer identifier.
            delay: Seconds between firings.
            repetitions: Number of firings; 0 repeats forever.
            callback: Function to invoke.
            *args: Extra positional arguments passed to the callback.
        """
        ...

    @abstractmethod
    def remove(self, identifier: Hashable) -> None:
        """Remove a timer."""
        ...

    @abstractmethod
    def exists(self, identifier: Hashable) -> bool:
        """Check whether a timer is scheduled."""
        ...
