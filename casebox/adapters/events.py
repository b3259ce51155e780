"""In-memory event bus.

A small stand-in for a host event system. Subscriptions are keyed by event
and name, dispatched in priority order (then registration order), and a
failing callback does not stop the others unless ``fail_on_error`` is set.

Example:
    >>> bus = InMemoryEventBus()
    >>> bus.register("PlayerSpawn", "greet", lambda player: f"hi {player}")
    >>> bus.run("PlayerSpawn", "alice")
    ['hi alice']
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from collections.abc import Callable, Hashable
from typing import Any

from casebox.errors import RegistrationError
from casebox.ports.events import EventPort, HookPriority

logger = logging.getLogger(__name__)


class _Subscription:
    """One callback subscribed to an event."""

    def __init__(
        self,
        name: Hashable,
        callback: Callable[..., Any],
        priority: HookPriority,
        order: int,
    ) -> None:
        self.name = name
        self.callback = callback
        self.priority = priority
        self.order = order

    def __lt__(self, other: _Subscription) -> bool:
        return (self.priority, self.order) < (other.priority, other.order)


class InMemoryEventBus(EventPort):
    """Event subscription registry kept in process memory."""

    def __init__(self, fail_on_error: bool = False) -> None:
        """Initialize the bus.

        Args:
            fail_on_error: If True, a callback's exception propagates out of run().
        """
        self._subscriptions: dict[str, dict[Hashable, _Subscription]] = defaultdict(dict)
        self._fail_on_error = fail_on_error
        self._order = itertools.count()

    def register(
        self,
        event: str,
        name: Hashable,
        callback: Callable[..., Any],
        priority: HookPriority = HookPriority.NORMAL,
    ) -> None:
        if not callable(callback):
            raise RegistrationError(
                f"Callback for {event}/{name!r} is not callable: {callback!r}",
                event=event,
            )
        self._subscriptions[event][name] = _Subscription(
            name, callback, HookPriority(priority), next(self._order)
        )
        logger.debug(f"Registered {name!r} on {event}")

    def remove(self, event: str, name: Hashable) -> None:
        subscriptions = self._subscriptions.get(event)
        if not subscriptions or name not in subscriptions:
            return
        del subscriptions[name]
        if not subscriptions:
            del self._subscriptions[event]
        logger.debug(f"Removed {name!r} from {event}")

    def run(self, event: str, *args: Any) -> list[Any]:
        # Snapshot so callbacks may add or remove subscriptions while running
        subscriptions = sorted(self._subscriptions.get(event, {}).values())
        results: list[Any] = []

        for subscription in subscriptions:
            try:
                results.append(subscription.callback(*args))
            except Exception as e:
                logger.error(
                    f"Callback {subscription.name!r} failed on {event}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                if self._fail_on_error:
                    raise

        return results

    def get_table(self) -> dict[str, dict[Hashable, Callable[..., Any]]]:
        return {
            event: {name: sub.callback for name, sub in subscriptions.items()}
            for event, subscriptions in self._subscriptions.items()
        }

    def is_registered(self, event: str, name: Hashable) -> bool:
        """Check whether ``name`` is subscribed to ``event``."""
        return name in self._subscriptions.get(event, {})
