"""Event subsystem port for casebox."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable
from enum import Enum
from typing import Any


class HookPriority(int, Enum):
    """Priority levels for event callbacks.

    Lower numbers run first.
    """

    HIGHEST = 0
    HIGH = 25
    NORMAL = 50
    LOW = 75
    LOWEST = 100


class HarnessEvent(str, Enum):
    """Lifecycle notifications the harness emits on the event port.

    Each is dispatched once per environment built, with the new
    environment as the only argument.
    """

    ENV_CREATED = "casebox.env_created"
    GROUP_ENV_CREATED = "casebox.group_env_created"
    ASYNC_ENV_CREATED = "casebox.async_env_created"


class EventPort(ABC):
    """Abstract port for the host's event subscription system.

    Implementations must make ``remove`` idempotent: removing a name that
    is not registered, or was already removed, is a no-op.
    """

    @abstractmethod
    def register(
        self,
        event: str,
        name: Hashable,
        callback: Callable[..., Any],
        priority: HookPriority = HookPriority.NORMAL,
    ) -> None:
        """Subscribe ``callback`` to ``event`` under ``name``.

        Registering an existing name for the same event replaces it.
        """
        ...

    @abstractmethod
    def remove(self, event: str, name: Hashable) -> None:
        """Unsubscribe ``name`` from ``event``."""
        ...

    @abstractmethod
    def run(self, event: str, *args: Any) -> list[Any]:
        """Invoke every callback subscribed to ``event``.

        Returns:
            The callbacks' return values, in call order.
        """
        ...

    @abstractmethod
    def get_table(self) -> dict[str, dict[Hashable, Callable[..., Any]]]:
        """Get a copy of all subscriptions, keyed by event then name."""
        ...
