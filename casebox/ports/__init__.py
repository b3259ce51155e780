from casebox.ports.events import EventPort, HarnessEvent, HookPriority
from casebox.ports.timers import ScheduledTimer, TimerPort

__all__ = [
    "EventPort",
    "HarnessEvent",
    "HookPriority",
    "ScheduledTimer",
    "TimerPort",
]
