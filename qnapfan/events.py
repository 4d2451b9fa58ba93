#!/usr/bin/env python3
"""
Notifications published by the control loop.

Observers (the daemon's debug logger, tests) subscribe by event name; the
loop never depends on anyone listening.
"""

from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

DUTY_CHANGED = "duty_changed"   # {"duty", "previous", "temp_c", "target"}
FAILSAFE = "failsafe"           # {"duty", "previous"}

Listener = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event name."""

    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event_name: str, callback: Listener) -> None:
        self._listeners[event_name].append(callback)

    def unsubscribe(self, event_name: str, callback: Listener) -> None:
        if callback in self._listeners.get(event_name, ()):
            self._listeners[event_name].remove(callback)

    def publish(self, event_name: str, payload: Any = None) -> None:
        """Call every listener of `event_name` in subscription order."""
        for callback in list(self._listeners.get(event_name, ())):
            callback(payload)


# Process-wide bus used by default.
event_bus = EventBus()
