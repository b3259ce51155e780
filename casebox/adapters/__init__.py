from casebox.adapters.events import InMemoryEventBus
from casebox.adapters.timers import ControllableTimerAdapter

__all__ = [
    "ControllableTimerAdapter",
    "InMemoryEventBus",
]
