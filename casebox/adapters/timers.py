"""Controllable timer adapter for deterministic testing.

Time only moves when ``advance`` is called, and due timers fire inside
that call, in due-time order.

Example:
    >>> timers = ControllableTimerAdapter()
    >>> timers.create("tick", 1.0, 3, print, "tick")
    >>> timers.advance(2.5)
    tick
    tick
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Callable, Hashable
from typing import Any

from casebox.errors import RegistrationError
from casebox.ports.timers import ScheduledTimer, TimerPort

logger = logging.getLogger(__name__)


class ControllableTimerAdapter(TimerPort):
    """Timer registry driven by a manual clock.

    Attributes:
        now: Current clock value in seconds.
    """

    def __init__(self, start: float = 0.0, fail_on_error: bool = False) -> None:
        """Initialize the adapter.

        Args:
            start: Initial clock value.
            fail_on_error: If True, a callback's exception propagates out of advance().
        """
        self.now = start
        self._timers: dict[Hashable, ScheduledTimer] = {}
        self._created: dict[Hashable, int] = {}
        self._order = itertools.count()
        self._fail_on_error = fail_on_error
        self._advancing_to: float | None = None

    def create(
        self,
        identifier: Hashable,
        delay: float,
        repetitions: int,
        callback: Callable[..., Any],
        *args: Any,
    ) -> None:
        if not callable(callback):
            raise RegistrationError(
                f"Callback for timer {identifier!r} is not callable: {callback!r}"
            )
        if delay < 0 or repetitions < 0:
            raise RegistrationError(
                f"Timer {identifier!r} needs a non-negative delay and repetition count"
            )
        next_fire = self.now + delay
        if self._advancing_to is not None and next_fire <= self.now:
            # Created by a callback: due no earlier than the next advance()
            next_fire = math.nextafter(self._advancing_to, math.inf)
        self._timers[identifier] = ScheduledTimer(
            identifier=identifier,
            delay=delay,
            repetitions=repetitions,
            callback=callback,
            args=args,
            next_fire=next_fire,
        )
        self._created[identifier] = next(self._order)
        logger.debug(f"Created timer {identifier!r} (delay={delay}, reps={repetitions})")

    def remove(self, identifier: Hashable) -> None:
        if self._timers.pop(identifier, None) is not None:
            self._created.pop(identifier, None)
            logger.debug(f"Removed timer {identifier!r}")

    def exists(self, identifier: Hashable) -> bool:
        return identifier in self._timers

    def get_timers(self) -> list[ScheduledTimer]:
        """Get all scheduled timers."""
        return list(self._timers.values())

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that becomes due.

        Zero-delay timers fire at most once per call, including ones a
        callback creates while the clock is advancing.

        Returns:
            Number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        outer, self._advancing_to = self._advancing_to, target

        try:
            while True:
                due = [t for t in self._timers.values() if t.next_fire <= target]
                if not due:
                    break
                timer = min(due, key=lambda t: (t.next_fire, self._created[t.identifier]))
                self.now = max(self.now, timer.next_fire)
                self._fire(timer, target)
                fired += 1
        finally:
            self._advancing_to = outer

        self.now = target
        return fired

    def _fire(self, timer: ScheduledTimer, target: float) -> None:
        if timer.repetitions == 1:
            self.remove(timer.identifier)
        else:
            if timer.repetitions > 1:
                timer.repetitions -= 1
            if timer.delay > 0:
                timer.next_fire += timer.delay
            else:
                timer.next_fire = math.nextafter(target, math.inf)

        try:
            timer.callback(*timer.args)
        except Exception as e:
            logger.error(
                f"Timer {timer.identifier!r} callback failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
            if self._fail_on_error:
                raise
