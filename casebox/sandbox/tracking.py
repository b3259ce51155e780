"""Side-effect tracking for event and timer registrations.

Test code never talks to the host's event or timer port directly. It gets
an EventFacade and a TimerFacade that forward every call to the real port
and record each registration in a SideEffectTracker. When the case ends,
``SideEffectTracker.reverse()`` removes everything the case registered.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from casebox.ports.events import EventPort
from casebox.ports.timers import TimerPort
from casebox.stubs import is_stub

logger = logging.getLogger(__name__)

# Shared by every TimerFacade so one-shot timer names never collide
_once_counter = itertools.count()


class RegistrationCategory(str, Enum):
    """Kind of side effect a registration created."""

    EVENT = "event"
    TIMER = "timer"


@dataclass(frozen=True)
class TrackedRegistration:
    """A registration made by test code, pending reversal.

    Attributes:
        category: Whether this is an event subscription or a timer.
        identifier: Subscription name or timer identifier.
        event: Event name, for EVENT registrations.
    """

    category: RegistrationCategory
    identifier: Hashable
    event: str | None = None


def _plain_callable(stub: Any) -> Callable[..., Any]:
    def invoke(*args: Any, **kwargs: Any) -> Any:
        return stub(*args, **kwargs)

    invoke.__name__ = f"invoke_{getattr(stub, '_mock_name', None) or 'stub'}"
    return invoke


def _unstub(callback: Any) -> Any:
    return _plain_callable(callback) if is_stub(callback) else callback


class SideEffectTracker:
    """Records registrations and reverses them against the real ports."""

    def __init__(self, events: EventPort, timers: TimerPort) -> None:
        self._events = events
        self._timers = timers
        self._registrations: list[TrackedRegistration] = []
        self.closed = False

    def track(self, registration: TrackedRegistration) -> None:
        self._registrations.append(registration)

    def close(self) -> list[TrackedRegistration]:
        """Reverse everything and treat later registrations as leftovers.

        Once closed, each registration is removed again as soon as the
        facade has forwarded it.
        """
        self.closed = True
        return self.reverse()

    def discard_late(self) -> None:
        if not self.closed or not self._registrations:
            return
        late = ", ".join(repr(r.identifier) for r in self._registrations)
        logger.debug(f"Removing registrations made after cleanup: {late}")
        self.reverse()

    @property
    def registrations(self) -> list[TrackedRegistration]:
        """Registrations made so far, in registration order."""
        return list(self._registrations)

    def reverse(self) -> list[TrackedRegistration]:
        """Remove every tracked registration from the real ports.

        Removal runs in reverse registration order. A removal that raises
        is logged and the remaining ones still run.

        Returns:
            Registrations whose removal raised.
        """
        failed: list[TrackedRegistration] = []
        registrations, self._registrations = self._registrations, []

        for registration in reversed(registrations):
            try:
                if registration.category is RegistrationCategory.EVENT:
                    self._events.remove(registration.event, registration.identifier)
                else:
                    self._timers.remove(registration.identifier)
            except Exception:
                logger.exception(
                    f"Failed to remove {registration.category.value} {registration.identifier!r}"
                )
                failed.append(registration)

        if registrations:
            logger.debug(f"Reversed {len(registrations) - len(failed)} registrations")
        return failed


class _Facade:
    """Reads and writes unknown attributes through to the wrapped port."""

    def __init__(self, port: Any, tracker: SideEffectTracker) -> None:
        object.__setattr__(self, "_port", port)
        object.__setattr__(self, "_tracker", tracker)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._port, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._port, name, value)


class EventFacade(_Facade):
    """Tracked stand-in for an EventPort."""

    def register(
        self,
        event: str,
        name: Hashable,
        callback: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        self._tracker.track(
            TrackedRegistration(RegistrationCategory.EVENT, name, event=event)
        )
        try:
            return self._port.register(event, name, _unstub(callback), *args, **kwargs)
        finally:
            self._tracker.discard_late()


class TimerFacade(_Facade):
    """Tracked stand-in for a TimerPort."""

    def __init__(
        self,
        port: TimerPort,
        tracker: SideEffectTracker,
        prefix: str = "simple_timer_",
    ) -> None:
        super().__init__(port, tracker)
        object.__setattr__(self, "_prefix", prefix)

    def create(
        self,
        identifier: Hashable,
        delay: float,
        repetitions: int,
        callback: Callable[..., Any],
        *args: Any,
    ) -> Any:
        self._tracker.track(TrackedRegistration(RegistrationCategory.TIMER, identifier))
        try:
            return self._port.create(identifier, delay, repetitions, _unstub(callback), *args)
        finally:
            self._tracker.discard_late()

    def schedule_once(self, delay: float, callback: Callable[..., Any]) -> str:
        """Run ``callback`` once after ``delay`` seconds.

        Returns:
            The generated timer identifier.
        """
        identifier = f"{self._prefix}{next(_once_counter)}"
        self.create(identifier, delay, 1, callback)
        return identifier
